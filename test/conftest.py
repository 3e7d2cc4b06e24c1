# /test/conftest.py
# Shared fixtures: an in-memory fork seeded with the three swap fixtures and a
# compiled-artifact directory holding a Swapper ABI.

import json
from decimal import Decimal

import pytest

from forkswap.adapters.mock import DEFAULT_DEPLOYER, MockForkBackend
from forkswap.core.context import ForkContext
from forkswap.scenarios import ETHER, FIXTURES, build_scenario

SWAPPER_ABI = [
    {"inputs": [{"internalType": "contract ISwapRouter", "name": "_swapRouter", "type": "address"}], "stateMutability": "nonpayable", "type": "constructor"},
    {"inputs": [{"internalType": "address[]", "name": "_path", "type": "address[]"}, {"internalType": "uint24", "name": "_fee", "type": "uint24"}, {"internalType": "uint256", "name": "_amountIn", "type": "uint256"}], "name": "swap", "outputs": [], "stateMutability": "nonpayable", "type": "function"},
]
SWAPPER_BYTECODE = "0x608060405234801561001057600080fd5b50"

# Output-token units per input-token unit, per fixture.
RATES = {
    "goerli-uni-weth": Decimal("0.0004"),
    "mainnet-dai-weth": Decimal("0.00063"),
    "polygon-dai-wmatic": Decimal("0.75"),
}


def fake_endpoint(network: str) -> str:
    return f"https://{network}.example.invalid/v3/test-key"


@pytest.fixture
def artifacts_dir(tmp_path):
    root = tmp_path / "artifacts" / "contracts"
    (root / "Swapper.sol").mkdir(parents=True)
    (root / "Swapper.sol" / "Swapper.json").write_text(
        json.dumps({"contractName": "Swapper", "abi": SWAPPER_ABI, "bytecode": SWAPPER_BYTECODE})
    )
    return root


@pytest.fixture
def scenarios():
    return {name: build_scenario(name, fake_endpoint) for name in FIXTURES}


def seed_backend(backend: MockForkBackend, scenarios: dict) -> MockForkBackend:
    for name, scenario in scenarios.items():
        backend.add_remote(
            scenario.fork.remote_endpoint,
            scenario.fork.pinned_block,
            balances={
                scenario.token_in.address: {scenario.actor: 2 * scenario.params.amount},
                scenario.token_out.address: {scenario.actor: 3 * ETHER},
            },
            native={scenario.actor: 5 * ETHER, DEFAULT_DEPLOYER: 10_000 * ETHER},
            contracts=[scenario.router],
        )
        backend.set_rate(scenario.token_in.address, scenario.token_out.address, RATES[name])
    return backend


@pytest.fixture
def mock_backend(scenarios):
    return seed_backend(MockForkBackend(), scenarios)


@pytest.fixture
def ctx(mock_backend, artifacts_dir):
    return ForkContext(mock_backend, step_timeout=5, artifacts_dir=str(artifacts_dir))
