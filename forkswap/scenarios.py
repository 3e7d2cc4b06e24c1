# /forkswap/scenarios.py
# Fork swap fixtures: one record per network, all driven by run_scenario.
from typing import Callable, Dict, List

from forkswap.core.config import settings
from forkswap.core.models import ForkSpec, ScenarioSpec, SwapParameters, TokenHandle

UNISWAP_V3_SWAP_ROUTER = "0xE592427A0AEce92De3Edee1F18E0157C05861564"
FEE_TIER_030 = 3000  # 0.3%

ETHER = 10**18

# --- Goerli ---
GOERLI_UNI = TokenHandle(address="0x1f9840a85d5aF5bf1D1762F925BDADdC4201F984", symbol="UNI")
GOERLI_WETH = TokenHandle(address="0xB4FBF271143F4FBf7B91A5ded31805e42b2208d6", symbol="WETH")
GOERLI_UNI_HOLDER = "0x41653c7d61609D856f29355E404F310Ec4142Cfb"

# --- Ethereum mainnet ---
MAINNET_DAI = TokenHandle(address="0x6B175474E89094C44Da98b954EedeAC495271d0F", symbol="DAI")
MAINNET_WETH = TokenHandle(address="0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", symbol="WETH")
MAINNET_DAI_HOLDER = "0xd68B6e9fC4eab0f041C5D2bF1EE7c4fD87d4e99f"

# --- Polygon PoS ---
POLYGON_DAI = TokenHandle(address="0x8f3Cf7ad23Cd3CaDbD9735AFf958023239c6A063", symbol="DAI")
POLYGON_WMATIC = TokenHandle(address="0x0d500B1d8E8eF31E21C99d1Db9A6444d3ADf1270", symbol="WMATIC")
POLYGON_DAI_HOLDER = "0x604981db0c06ea1b37495265eda4619c8eb95a3d"

# name -> (network, block, actor, token_in, token_out, amount)
FIXTURES: Dict[str, tuple] = {
    "goerli-uni-weth": ("goerli", 8446620, GOERLI_UNI_HOLDER, GOERLI_UNI, GOERLI_WETH, 1_000_000 * ETHER),
    "mainnet-dai-weth": ("mainnet", 16572390, MAINNET_DAI_HOLDER, MAINNET_DAI, MAINNET_WETH, 1_000_000 * ETHER),
    "polygon-dai-wmatic": ("polygon-mainnet", 16572390, POLYGON_DAI_HOLDER, POLYGON_DAI, POLYGON_WMATIC, 10_000 * ETHER),
}


def build_scenario(name: str, endpoint_for: Callable[[str], str] | None = None) -> ScenarioSpec:
    """Builds the named fixture. *endpoint_for* maps a network name to its archive URL
    (defaults to the configured provider, which requires INFURA_API_KEY)."""
    network, block, actor, token_in, token_out, amount = FIXTURES[name]
    endpoint_for = endpoint_for or settings.remote_endpoint
    return ScenarioSpec(
        name=name,
        network=network,
        fork=ForkSpec(remote_endpoint=endpoint_for(network), pinned_block=block),
        actor=actor,
        token_in=token_in,
        token_out=token_out,
        router=settings.SWAP_ROUTER_ADDRESS or UNISWAP_V3_SWAP_ROUTER,
        params=SwapParameters(path=[token_in.address, token_out.address], fee=FEE_TIER_030, amount=amount),
    )


def all_scenarios(endpoint_for: Callable[[str], str] | None = None) -> List[ScenarioSpec]:
    return [build_scenario(name, endpoint_for) for name in FIXTURES]
