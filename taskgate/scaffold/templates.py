"""
Source templates for generated client drivers.

Placeholders use string.Template (`$name` / `${name}`); generated Python
never needs a literal dollar sign. Every value substituted into code is
either a constant from this module or was validated by ScaffoldOptions.
"""

from __future__ import annotations

from string import Template

# Operations every generated driver exposes, in source order.
OPERATION_ORDER = (
    "get_balance",
    "send_transaction",
    "get_transaction",
    "get_block",
    "estimate_gas",
    "get_token_balance",
    "get_network_info",
)

# Operations whose absence is a hard failure at call time. The rest degrade to None.
REQUIRED_OPERATIONS = frozenset({"get_balance", "get_transaction", "get_block"})

# RPC methods that back each operation, per network kind, in preference order.
RPC_CANDIDATES: dict[str, dict[str, tuple[str, ...]]] = {
    "get_balance": {
        "evm": ("eth_getBalance", "getBalance"),
        "non-evm": ("getBalance",),
    },
    "get_transaction": {
        "evm": ("eth_getTransactionByHash", "getTransaction"),
        "non-evm": ("getTransaction",),
    },
    "get_block": {
        "evm": ("eth_getBlockByNumber", "eth_getBlockByHash", "getBlock"),
        "non-evm": ("getBlock",),
    },
    "estimate_gas": {
        "evm": ("eth_estimateGas", "estimateGas"),
        "non-evm": ("estimateGas",),
    },
    "get_token_balance": {
        "evm": ("eth_call",),
        "non-evm": ("getTokenAccountsByOwner",),
    },
    "get_network_info": {
        "evm": ("eth_chainId", "getEpochInfo"),
        "non-evm": ("getEpochInfo",),
    },
}


def method_mapping() -> dict[str, str]:
    """rpc method -> driver operation, across both network kinds."""
    mapping: dict[str, str] = {}
    for operation, by_kind in RPC_CANDIDATES.items():
        for candidates in by_kind.values():
            for rpc_method in candidates:
                mapping.setdefault(rpc_method, operation)
    return mapping


# ---------------------------------------------------------------------------
# Driver module
# ---------------------------------------------------------------------------

DRIVER_MODULE = Template('''"""
${display} driver.

Generated from a ${dialect} specification (${method_count} RPC methods).
Operations without a matching RPC method are placeholders; search for TODO.
"""

from __future__ import annotations

from typing import Any

from ${package}.cache import CachePool
from ${package}.contracts import BlockchainDriver
from ${package}.exceptions import ConfigurationError, TransactionError
from ${package}.transport import HttpClient

NETWORK_TYPE = "${network_kind}"
NATIVE_CURRENCY = "${currency}"
DECIMALS = ${decimals}
BASE_UNIT_MULTIPLIER = 10**DECIMALS
DEFAULT_ENDPOINT = "${endpoint}"


class ${class_name}(BlockchainDriver):
    """${display} network driver speaking JSON-RPC 2.0."""

    def __init__(self, http_client: HttpClient | None = None, cache: CachePool | None = None) -> None:
        self._http_client = http_client
        self._cache = cache if cache is not None else CachePool()
        self._endpoint = ""

    def connect(self, config: dict[str, Any]) -> None:
        endpoint = config.get("endpoint") or DEFAULT_ENDPOINT
        if not endpoint:
            raise ConfigurationError("${display} endpoint is required in configuration.")
        self._endpoint = endpoint
        if self._http_client is None:
            self._http_client = HttpClient(base_url=endpoint, timeout=config.get("timeout", 30))

${operations}
    # -- helpers --

    def _rpc_call(self, method: str, params: list[Any] | None = None) -> Any:
        self._ensure_connected()
        payload = {"jsonrpc": "2.0", "method": method, "params": params or [], "id": 1}
        response = self._http_client.post("", payload)
        error = response.get("error")
        if error:
            message = error.get("message", "Unknown error") if isinstance(error, dict) else error
            raise RuntimeError(f"${display} RPC error: {message}")
        return response.get("result")

    def _ensure_connected(self) -> None:
        if self._http_client is None or not self._endpoint:
            raise ConfigurationError("${display} driver is not connected. Call connect() first.")

    def _cached(self, key: str) -> tuple[bool, Any]:
        if self._cache.has(key):
            return True, self._cache.get(key)
        return False, None

    @staticmethod
    def _to_int(value: Any) -> int:
        if isinstance(value, str):
            return int(value, 0)
        return int(value or 0)

    @classmethod
    def _base_to_main(cls, base_units: Any) -> float:
        return cls._to_int(base_units) / BASE_UNIT_MULTIPLIER

    @staticmethod
    def _main_to_base(amount: float) -> int:
        return int(round(amount * BASE_UNIT_MULTIPLIER))
${helpers}''')

EVM_HELPERS = '''
    @staticmethod
    def _encode_balance_of(owner: str) -> str:
        """ABI-encode an ERC-20 balanceOf(owner) call."""
        return "0x70a08231" + owner.lower().removeprefix("0x").rjust(64, "0")

    @staticmethod
    def _block_param(block_id: int | str) -> str:
        if isinstance(block_id, int):
            return hex(block_id)
        return block_id
'''


# ---------------------------------------------------------------------------
# Operation bodies, keyed by the RPC method that backs them
# ---------------------------------------------------------------------------

OPERATION_BODIES: dict[str, str] = {
    "eth_getBalance": '''
    def get_balance(self, address: str) -> float:
        """Native balance of `address` in ${currency}."""
        key = f"get_balance:{address}"
        hit, value = self._cached(key)
        if hit:
            return value
        balance = self._base_to_main(self._rpc_call("eth_getBalance", [address, "latest"]))
        self._cache.set(key, balance, 30)
        return balance
''',
    "getBalance": '''
    def get_balance(self, address: str) -> float:
        """Native balance of `address` in ${currency}."""
        key = f"get_balance:{address}"
        hit, value = self._cached(key)
        if hit:
            return value
        result = self._rpc_call("getBalance", [address])
        raw = result.get("value", 0) if isinstance(result, dict) else result
        balance = self._base_to_main(raw)
        self._cache.set(key, balance, 30)
        return balance
''',
    "eth_getTransactionByHash": '''
    def get_transaction(self, tx_hash: str) -> dict[str, Any]:
        key = f"get_transaction:{tx_hash}"
        hit, value = self._cached(key)
        if hit:
            return value
        transaction = self._rpc_call("eth_getTransactionByHash", [tx_hash]) or {}
        self._cache.set(key, transaction, 3600)
        return transaction
''',
    "getTransaction": '''
    def get_transaction(self, tx_hash: str) -> dict[str, Any]:
        key = f"get_transaction:{tx_hash}"
        hit, value = self._cached(key)
        if hit:
            return value
        transaction = self._rpc_call("getTransaction", [tx_hash]) or {}
        self._cache.set(key, transaction, 3600)
        return transaction
''',
    "eth_getBlockByNumber": '''
    def get_block(self, block_id: int | str) -> dict[str, Any]:
        """Block by number or tag ("latest", "earliest")."""
        return self._rpc_call("eth_getBlockByNumber", [self._block_param(block_id), False]) or {}
''',
    "eth_getBlockByHash": '''
    def get_block(self, block_id: int | str) -> dict[str, Any]:
        """Block by hash. Numeric lookups are not exposed by this network's RPC."""
        if isinstance(block_id, int):
            raise ValueError("${display} only supports block lookup by hash.")
        return self._rpc_call("eth_getBlockByHash", [block_id, False]) or {}
''',
    "getBlock": '''
    def get_block(self, block_id: int | str) -> dict[str, Any]:
        return self._rpc_call("getBlock", [block_id]) or {}
''',
    "eth_estimateGas": '''
    def estimate_gas(self, from_address: str, to_address: str, amount: float) -> int | None:
        call = {"from": from_address, "to": to_address, "value": hex(self._main_to_base(amount))}
        return self._to_int(self._rpc_call("eth_estimateGas", [call]))
''',
    "estimateGas": '''
    def estimate_gas(self, from_address: str, to_address: str, amount: float) -> int | None:
        result = self._rpc_call("estimateGas", [from_address, to_address, self._main_to_base(amount)])
        return None if result is None else self._to_int(result)
''',
    "eth_call": '''
    def get_token_balance(self, address: str, token_address: str) -> float | None:
        """Raw ERC-20 balance of `address` for the token contract at `token_address`."""
        call = {"to": token_address, "data": self._encode_balance_of(address)}
        result = self._rpc_call("eth_call", [call, "latest"])
        # TODO: divide by the token's own decimals() once a token registry exists
        return float(self._to_int(result or "0x0"))
''',
    "getTokenAccountsByOwner": '''
    def get_token_balance(self, address: str, token_address: str) -> float | None:
        """Sum of every token account `address` holds for mint `token_address`."""
        result = self._rpc_call(
            "getTokenAccountsByOwner",
            [address, {"mint": token_address}, {"encoding": "jsonParsed"}],
        )
        accounts = result.get("value", []) if isinstance(result, dict) else []
        if not accounts:
            return None
        total = 0.0
        for account in accounts:
            info = account.get("account", {}).get("data", {}).get("parsed", {}).get("info", {})
            total += float(info.get("tokenAmount", {}).get("uiAmount") or 0)
        return total
''',
    "eth_chainId": '''
    def get_network_info(self) -> dict[str, Any] | None:
        chain_id = self._to_int(self._rpc_call("eth_chainId"))
        return {"chain_id": chain_id, "network_type": NETWORK_TYPE, "native_currency": NATIVE_CURRENCY}
''',
    "getEpochInfo": '''
    def get_network_info(self) -> dict[str, Any] | None:
        result = self._rpc_call("getEpochInfo") or {}
        return {**result, "network_type": NETWORK_TYPE, "native_currency": NATIVE_CURRENCY}
''',
}

SEND_TRANSACTION = '''
    def send_transaction(self, from_address: str, to_address: str, amount: float, options: dict[str, Any] | None = None) -> str:
        self._ensure_connected()
        # TODO: sign locally and submit the raw transaction
        raise TransactionError("Transaction signing is not implemented for ${display}.")
'''

PLACEHOLDER_BODIES: dict[str, str] = {
    "get_balance": '''
    def get_balance(self, address: str) -> float:
        self._ensure_connected()
        # TODO: the ${dialect} specification exposes no balance method
        raise NotImplementedError("get_balance is not implemented for ${display}.")
''',
    "get_transaction": '''
    def get_transaction(self, tx_hash: str) -> dict[str, Any]:
        self._ensure_connected()
        # TODO: the ${dialect} specification exposes no transaction lookup
        raise NotImplementedError("get_transaction is not implemented for ${display}.")
''',
    "get_block": '''
    def get_block(self, block_id: int | str) -> dict[str, Any]:
        self._ensure_connected()
        # TODO: the ${dialect} specification exposes no block lookup
        raise NotImplementedError("get_block is not implemented for ${display}.")
''',
    "estimate_gas": '''
    def estimate_gas(self, from_address: str, to_address: str, amount: float) -> int | None:
        """Fee estimation is not exposed by this network's RPC."""
        return None
''',
    "get_token_balance": '''
    def get_token_balance(self, address: str, token_address: str) -> float | None:
        """Token balances are not exposed by this network's RPC."""
        return None
''',
    "get_network_info": '''
    def get_network_info(self) -> dict[str, Any] | None:
        """Network metadata is not exposed by this network's RPC."""
        return None
''',
}


# ---------------------------------------------------------------------------
# Test module
# ---------------------------------------------------------------------------

TEST_MODULE = Template('''"""Tests for ${class_name}. Generated; extend with network-specific cases."""

from __future__ import annotations

from typing import Any

import pytest

from ${package}.drivers.${module} import DECIMALS, ${class_name}
from ${package}.exceptions import ConfigurationError, TransactionError

ENDPOINT = "https://rpc.example.invalid"


class FakeHttpClient:
    def __init__(self) -> None:
        self.responses: list[dict[str, Any]] = []
        self.requests: list[dict[str, Any]] = []

    def queue(self, result: Any) -> None:
        self.responses.append({"jsonrpc": "2.0", "id": 1, "result": result})

    def post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.requests.append(payload)
        return self.responses.pop(0)


class FakeCache:
    def __init__(self) -> None:
        self.values: dict[str, Any] = {}

    def has(self, key: str) -> bool:
        return key in self.values

    def get(self, key: str) -> Any:
        return self.values[key]

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        self.values[key] = value


@pytest.fixture
def http_client() -> FakeHttpClient:
    return FakeHttpClient()


@pytest.fixture
def driver(http_client: FakeHttpClient) -> ${class_name}:
    return ${class_name}(http_client=http_client, cache=FakeCache())


@pytest.fixture
def connected(driver: ${class_name}) -> ${class_name}:
    driver.connect({"endpoint": ENDPOINT})
    return driver

${connect_test}

def test_calls_before_connect_raise(driver):
    with pytest.raises(ConfigurationError):
        driver.get_balance("addr")


def test_send_transaction_is_not_implemented(connected):
    with pytest.raises(TransactionError):
        connected.send_transaction("from", "to", 1.0)
${operation_tests}''')

CONNECT_REQUIRES_ENDPOINT = '''
def test_connect_requires_endpoint(driver):
    with pytest.raises(ConfigurationError):
        driver.connect({})
'''

CONNECT_USES_DEFAULT_ENDPOINT = '''
def test_connect_falls_back_to_default_endpoint(driver, http_client):
    driver.connect({})
    http_client.queue(None)
    driver._rpc_call("ping")
    assert http_client.requests[0]["method"] == "ping"
'''

OPERATION_TESTS: dict[str, str] = {
    "eth_getBalance": '''
def test_get_balance(connected, http_client):
    http_client.queue(hex(2 * 10**DECIMALS))
    assert connected.get_balance("0xabc") == 2.0
    assert http_client.requests[0]["method"] == "eth_getBalance"
''',
    "getBalance": '''
def test_get_balance(connected, http_client):
    http_client.queue({"value": 2 * 10**DECIMALS})
    assert connected.get_balance("addr") == 2.0
    assert http_client.requests[0]["method"] == "getBalance"
''',
    "eth_getTransactionByHash": '''
def test_get_transaction(connected, http_client):
    http_client.queue({"hash": "0x01"})
    assert connected.get_transaction("0x01") == {"hash": "0x01"}
''',
    "getTransaction": '''
def test_get_transaction(connected, http_client):
    http_client.queue({"slot": 7})
    assert connected.get_transaction("sig") == {"slot": 7}
''',
    "eth_getBlockByNumber": '''
def test_get_block(connected, http_client):
    http_client.queue({"number": "0x64"})
    assert connected.get_block(100) == {"number": "0x64"}
    assert http_client.requests[0]["params"][0] == "0x64"
''',
    "eth_getBlockByHash": '''
def test_get_block(connected, http_client):
    http_client.queue({"hash": "0xbeef"})
    assert connected.get_block("0xbeef") == {"hash": "0xbeef"}
''',
    "getBlock": '''
def test_get_block(connected, http_client):
    http_client.queue({"blockhash": "abc"})
    assert connected.get_block(100) == {"blockhash": "abc"}
''',
    "eth_estimateGas": '''
def test_estimate_gas(connected, http_client):
    http_client.queue("0x5208")
    assert connected.estimate_gas("0xa", "0xb", 1.0) == 21000
''',
    "estimateGas": '''
def test_estimate_gas(connected, http_client):
    http_client.queue(5000)
    assert connected.estimate_gas("a", "b", 1.0) == 5000
''',
    "eth_call": '''
def test_get_token_balance(connected, http_client):
    http_client.queue(hex(5))
    assert connected.get_token_balance("0xabc", "0xtoken") == 5.0
    assert http_client.requests[0]["params"][0]["data"].startswith("0x70a08231")
''',
    "getTokenAccountsByOwner": '''
def test_get_token_balance(connected, http_client):
    account = {"account": {"data": {"parsed": {"info": {"tokenAmount": {"uiAmount": 1.5}}}}}}
    http_client.queue({"value": [account]})
    assert connected.get_token_balance("owner", "mint") == 1.5
''',
    "eth_chainId": '''
def test_get_network_info(connected, http_client):
    http_client.queue("0x1")
    assert connected.get_network_info()["chain_id"] == 1
''',
    "getEpochInfo": '''
def test_get_network_info(connected, http_client):
    http_client.queue({"epoch": 3, "slotIndex": 7})
    assert connected.get_network_info()["epoch"] == 3
''',
}

PLACEHOLDER_TESTS: dict[str, str] = {
    "get_balance": '''
def test_get_balance_is_placeholder(connected):
    with pytest.raises(NotImplementedError):
        connected.get_balance("addr")
''',
    "get_transaction": '''
def test_get_transaction_is_placeholder(connected):
    with pytest.raises(NotImplementedError):
        connected.get_transaction("hash")
''',
    "get_block": '''
def test_get_block_is_placeholder(connected):
    with pytest.raises(NotImplementedError):
        connected.get_block(1)
''',
    "estimate_gas": '''
def test_estimate_gas_unsupported(connected):
    assert connected.estimate_gas("a", "b", 1.0) is None
''',
    "get_token_balance": '''
def test_get_token_balance_unsupported(connected):
    assert connected.get_token_balance("a", "token") is None
''',
    "get_network_info": '''
def test_get_network_info_unsupported(connected):
    assert connected.get_network_info() is None
''',
}


# ---------------------------------------------------------------------------
# Documentation
# ---------------------------------------------------------------------------

DOCS_PAGE = Template('''# ${display} Driver

## Overview

`${class_name}` connects ${package} to the ${display} network over JSON-RPC 2.0.

| Property | Value |
|---|---|
| Network type | ${network_kind} |
| Native currency | ${currency} |
| Decimals | ${decimals} |
| Source specification | ${dialect} ${spec_version} |

## Configuration

```python
from ${package}.drivers.${module} import ${class_name}

driver = ${class_name}()
driver.connect({"endpoint": "${endpoint_example}", "timeout": 30})
```

`endpoint` is required${endpoint_note}.

## Basic Usage

${usage}
## Operation Support

${status_block}

## RPC Methods

${rpc_methods}

## Notes

- `send_transaction` always raises `TransactionError`; signing is not generated.
- Balances are returned in ${currency}; conversion uses 10^${decimals} base units.
- Operations marked *placeholder* need a hand-written implementation.
''')

USAGE_SNIPPETS: dict[str, str] = {
    "get_balance": 'balance = driver.get_balance("<address>")',
    "send_transaction": 'tx_hash = driver.send_transaction("<from>", "<to>", 1.0)  # raises TransactionError',
    "get_transaction": 'transaction = driver.get_transaction("<tx hash>")',
    "get_block": "block = driver.get_block(12345)",
    "estimate_gas": 'fee = driver.estimate_gas("<from>", "<to>", 1.0)',
    "get_token_balance": 'tokens = driver.get_token_balance("<address>", "<token address>")',
    "get_network_info": "info = driver.get_network_info()",
}

STATUS_START = "<!-- taskgate:status:start -->"
STATUS_END = "<!-- taskgate:status:end -->"


def operation_status(operation: str, rpc_method: str | None) -> str:
    """Status label of a freshly generated operation."""
    if rpc_method is not None:
        return "implemented"
    if operation == "send_transaction":
        return "not implemented"
    if operation in REQUIRED_OPERATIONS:
        return "placeholder"
    return "unsupported"


def render_status_block(rows: list[tuple[str, str | None, str]]) -> str:
    """Operation/RPC/status table between markers, so update-docs can refresh it in place."""
    lines = [STATUS_START, "| Operation | RPC method | Status |", "|---|---|---|"]
    for operation, rpc_method, status in rows:
        rpc = f"`{rpc_method}`" if rpc_method else "-"
        lines.append(f"| `{operation}` | {rpc} | {status} |")
    lines.append(STATUS_END)
    return "\n".join(lines)


def inline_text(text: str) -> str:
    """Free text from an API document, flattened to one markdown line with pipes and tags escaped."""
    return " ".join(text.split()).replace("|", "\\|").replace("<", "&lt;")
