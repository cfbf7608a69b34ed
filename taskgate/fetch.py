"""
Remote retrieval of API specifications.
"""

from __future__ import annotations

from typing import Protocol

import requests
from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential


class SpecFetcher(Protocol):
    def fetch(self, locator: str, auth_token: str | None = None) -> str: ...


class HttpSpecFetcher:
    """GET a spec over HTTP(S), retrying transient network failures."""

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=10),
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
        reraise=True,
    )
    def fetch(self, locator: str, auth_token: str | None = None) -> str:
        headers = {"Accept": "application/json, application/yaml;q=0.9, */*;q=0.5"}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        logger.debug(f"[FETCH] GET {locator}")
        response = requests.get(locator, headers=headers, timeout=self.timeout)
        response.raise_for_status()
        return response.text
