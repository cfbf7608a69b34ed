import ast

import pytest
from pydantic import ValidationError as PydanticValidationError

from conftest import EVM_SPEC, PARTIAL_SPEC
from taskgate.errors import ValidationError
from taskgate.scaffold import ArtifactKind, DriverScaffolder, NetworkKind, ScaffoldOptions, parse_specification
from taskgate.scaffold import templates
from taskgate.scaffold.driver_scaffolder import resolve_operations, snake_case
from taskgate.tasks.update_docs import extract_driver_info

SPECS = {
    "evm": EVM_SPEC,
    "partial": PARTIAL_SPEC,
    "empty": {"openrpc": "1.2.6", "methods": []},
    "hash-blocks": {"methods": ["eth_getBlockByHash", "getTransaction", "getEpochInfo"]},
}


@pytest.mark.parametrize("name, expected", [
    ("Polygon", "polygon"),
    ("BinanceSmartChain", "binance_smart_chain"),
    ("ZKSync", "zk_sync"),
    ("Layer2Net", "layer2_net"),
])
def test_snake_case(name, expected):
    assert snake_case(name) == expected


def test_artifact_paths():
    paths = DriverScaffolder(ScaffoldOptions(package="acme.chains")).artifact_paths("BinanceSmartChain")
    assert paths == {
        ArtifactKind.CLIENT_CLASS: "src/acme/chains/drivers/binance_smart_chain_driver.py",
        ArtifactKind.TEST_SUITE: "tests/drivers/test_binance_smart_chain_driver.py",
        ArtifactKind.DOCUMENTATION: "docs/drivers/binance_smart_chain.md",
    }


@pytest.mark.parametrize("name", ["polygon", "Poly-gon", "", "Poly gon"])
def test_invalid_names(name):
    with pytest.raises(ValidationError) as exc:
        DriverScaffolder().artifact_paths(name)
    assert exc.value.fields == ["name"]


def test_options_are_validated():
    with pytest.raises(PydanticValidationError):
        ScaffoldOptions(native_currency="matic")
    with pytest.raises(PydanticValidationError):
        ScaffoldOptions(default_endpoint='https://x"); import os')
    with pytest.raises(PydanticValidationError):
        ScaffoldOptions(package="not-a-package")


@pytest.mark.parametrize("spec_key", sorted(SPECS))
@pytest.mark.parametrize("kind", list(NetworkKind))
def test_generated_python_parses(spec_key, kind):
    spec = parse_specification(SPECS[spec_key])
    scaffolder = DriverScaffolder(ScaffoldOptions(default_endpoint="https://rpc.example.org"))
    for artifact in scaffolder.generate_artifacts("Testnet", spec, kind):
        if artifact.path.endswith(".py"):
            ast.parse(artifact.content)


def test_generation_is_deterministic():
    spec = parse_specification(EVM_SPEC)
    first, second = DriverScaffolder(), DriverScaffolder()
    for method in ("generate_driver_class", "generate_test_class", "generate_documentation"):
        assert getattr(first, method)("Polygon", spec, NetworkKind.EVM) == getattr(second, method)(
            "Polygon", spec, NetworkKind.EVM
        )


def test_evm_driver_uses_eth_methods():
    spec = parse_specification(EVM_SPEC)
    source = DriverScaffolder().generate_driver_class("Polygon", spec, NetworkKind.EVM)

    assert "class PolygonDriver(BlockchainDriver):" in source
    assert 'NETWORK_TYPE = "evm"' in source
    assert 'NATIVE_CURRENCY = "POL"' in source
    assert "DECIMALS = 18" in source
    assert '"eth_getBalance"' in source
    assert "def _encode_balance_of" in source
    assert "NotImplementedError" not in source


def test_non_evm_partial_spec_gets_placeholders():
    spec = parse_specification(PARTIAL_SPEC)
    options = ScaffoldOptions(native_currency="SOL", decimals=9)
    source = DriverScaffolder(options).generate_driver_class("Solana", spec, NetworkKind.NON_EVM)

    assert "DECIMALS = 9" in source
    assert '"getBalance"' in source
    assert 'raise NotImplementedError("get_transaction is not implemented for Solana.")' in source
    assert "def _encode_balance_of" not in source

    resolved = resolve_operations(spec, NetworkKind.NON_EVM)
    assert resolved["get_balance"] == "getBalance"
    assert resolved["estimate_gas"] is None
    assert resolved["send_transaction"] is None


def test_evm_kind_ignores_eth_methods_for_non_evm():
    spec = parse_specification(EVM_SPEC)
    resolved = resolve_operations(spec, NetworkKind.NON_EVM)
    assert set(resolved.values()) == {None}


def test_block_by_hash_fallback():
    spec = parse_specification(SPECS["hash-blocks"])
    resolved = resolve_operations(spec, NetworkKind.EVM)
    assert resolved["get_block"] == "eth_getBlockByHash"
    assert resolved["get_transaction"] == "getTransaction"
    assert resolved["get_network_info"] == "getEpochInfo"


def test_connect_test_follows_default_endpoint():
    spec = parse_specification(PARTIAL_SPEC)
    without = DriverScaffolder().generate_test_class("Solana", spec, NetworkKind.NON_EVM)
    with_default = DriverScaffolder(ScaffoldOptions(default_endpoint="https://api.solana.example")).generate_test_class(
        "Solana", spec, NetworkKind.NON_EVM
    )
    assert "def test_connect_requires_endpoint" in without
    assert "def test_connect_falls_back_to_default_endpoint" in with_default
    assert "from chainkit.drivers.solana_driver import DECIMALS, SolanaDriver" in without


@pytest.mark.parametrize("spec_key", sorted(SPECS))
def test_docs_status_matches_driver_source(spec_key):
    """The status table in the docs must agree with what update-docs reads back from the code."""
    spec = parse_specification(SPECS[spec_key])
    scaffolder = DriverScaffolder()
    paths = scaffolder.artifact_paths("Testnet")
    source = scaffolder.generate_driver_class("Testnet", spec, NetworkKind.EVM)
    docs = scaffolder.generate_documentation("Testnet", spec, NetworkKind.EVM)

    info = extract_driver_info(paths[ArtifactKind.CLIENT_CLASS], source)
    assert info is not None
    assert [op for op, _, _ in info.operations] == list(templates.OPERATION_ORDER)
    assert templates.render_status_block(info.operations) in docs


def test_documentation_lists_rpc_methods():
    spec = parse_specification(EVM_SPEC)
    docs = DriverScaffolder().generate_documentation("Polygon", spec, NetworkKind.EVM)
    assert docs.startswith("# Polygon Driver")
    assert "- `eth_getBalance` -> `get_balance`" in docs
    assert "- `eth_getBlockByNumber` -> `get_block`: Block by number" in docs
    assert "| `send_transaction` | - | not implemented |" in docs


def test_method_summaries_stay_on_one_line():
    spec = parse_specification({
        "jsonrpc": "2.0",
        "methods": {"getBalance": {"summary": f"Lamport | balance\n\n{templates.STATUS_START}"}},
    })
    docs = DriverScaffolder().generate_documentation("Solana", spec, NetworkKind.NON_EVM)

    (line,) = [l for l in docs.splitlines() if l.startswith("- `getBalance`")]
    assert line.endswith(": Lamport \\| balance &lt;!-- taskgate:status:start -->")
    assert docs.count(templates.STATUS_START) == 1
