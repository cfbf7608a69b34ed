"""
External process runner. Every command runs under a wall-clock timeout;
running out of time is reported on the result, never raised.
"""

from __future__ import annotations

import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

from loguru import logger

from taskgate.errors import ExecutionError


@dataclass
class ProcessResult:
    command: list[str]
    returncode: int | None
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str:
        return f"{self.stdout}\n{self.stderr}".strip()


def _as_text(data: str | bytes | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


class ProcessRunner:
    def run(
        self,
        command: Sequence[str],
        cwd: Path,
        timeout: float = 60,
        env: Mapping[str, str] | None = None,
    ) -> ProcessResult:
        cmd = [str(part) for part in command]
        logger.debug(f"[RUNNER] {' '.join(cmd)} (timeout={timeout}s)")
        start = time.monotonic()
        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=dict(env) if env is not None else None,
            )
        except subprocess.TimeoutExpired as e:
            logger.warning(f"[RUNNER] Timed out after {timeout}s: {' '.join(cmd)}")
            return ProcessResult(
                command=cmd,
                returncode=None,
                stdout=_as_text(e.stdout),
                stderr=_as_text(e.stderr),
                duration=time.monotonic() - start,
                timed_out=True,
            )
        except OSError as e:
            raise ExecutionError(f"Could not start {cmd[0]}: {e}", step="process") from e

        return ProcessResult(
            command=cmd,
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
            duration=time.monotonic() - start,
        )

    def which(self, name: str) -> str | None:
        return shutil.which(name)
