# /test/test_scenarios.py
# The parameterized scenario driver over all three swap fixtures (in-memory fork).

import pytest
from pydantic import ValidationError

from forkswap.core.context import ScenarioPhase
from forkswap.core.errors import ActionReverted, AssertionFailed, ConfigurationError, InsufficientFunds
from forkswap.core.models import ScenarioSpec, SwapParameters
from forkswap.core.scenario import run_scenario
from forkswap.scenarios import ETHER, FEE_TIER_030, FIXTURES, build_scenario

HAPPY_PATH = [
    ScenarioPhase.IDLE,
    ScenarioPhase.FORKED,
    ScenarioPhase.ACTOR_IMPERSONATED,
    ScenarioPhase.CONTRACT_DEPLOYED,
    ScenarioPhase.ALLOWANCE_GRANTED,
    ScenarioPhase.ACTION_EXECUTED,
    ScenarioPhase.VERIFIED,
]


@pytest.mark.asyncio
@pytest.mark.parametrize("name", list(FIXTURES))
async def test_fork_swap_moves_both_balances(ctx, scenarios, name):
    """
    GIVEN a fork pinned at the fixture block and a funded holder
    WHEN the holder approves and swaps through a freshly deployed executor
    THEN the spent token strictly decreases and the received token strictly increases.
    """
    scenario = scenarios[name]

    result = await run_scenario(ctx, scenario)

    assert result.after_in.value < result.before_in.value
    assert result.after_out.value > result.before_out.value
    assert result.before_in.value - result.after_in.value == scenario.params.amount
    assert ctx.phase is ScenarioPhase.VERIFIED
    assert ctx.history == HAPPY_PATH


@pytest.mark.asyncio
async def test_scenarios_share_one_context_without_leakage(ctx, scenarios):
    results = {}
    for name, scenario in scenarios.items():
        results[name] = await run_scenario(ctx, scenario)

    # Running the first scenario again starts from the same pinned balances.
    name, scenario = next(iter(scenarios.items()))
    rerun = await run_scenario(ctx, scenario)
    assert rerun.before_in.value == results[name].before_in.value
    assert rerun.before_out.value == results[name].before_out.value


@pytest.mark.asyncio
async def test_zero_output_swap_fails_verification(ctx, mock_backend, scenarios):
    scenario = scenarios["polygon-dai-wmatic"]
    mock_backend.set_rate(scenario.token_in.address, scenario.token_out.address, 0)

    with pytest.raises(AssertionFailed) as exc:
        await run_scenario(ctx, scenario)

    assert exc.value.direction == "INCREASE"
    assert ctx.phase is ScenarioPhase.FAILED


@pytest.mark.asyncio
async def test_unfunded_holder_fails_before_any_transaction(ctx, mock_backend, scenarios):
    scenario = scenarios["goerli-uni-weth"]
    remote = mock_backend.remote_states[(scenario.fork.remote_endpoint, scenario.fork.pinned_block)]
    remote.balances[scenario.token_in.address][scenario.actor] = scenario.params.amount - 1

    with pytest.raises(InsufficientFunds):
        await run_scenario(ctx, scenario)

    assert [tx["action"] for tx in mock_backend.sent_transactions] == ["deploy"]


@pytest.mark.asyncio
async def test_unfunded_holder_reverts_when_solvency_check_is_skipped(ctx, mock_backend, scenarios):
    scenario = scenarios["goerli-uni-weth"]
    remote = mock_backend.remote_states[(scenario.fork.remote_endpoint, scenario.fork.pinned_block)]
    remote.balances[scenario.token_in.address][scenario.actor] = 0

    with pytest.raises(ActionReverted):
        await run_scenario(ctx, scenario, check_solvency=False)


def test_fixture_values():
    goerli = build_scenario("goerli-uni-weth", lambda n: f"https://{n}.example.invalid")
    mainnet = build_scenario("mainnet-dai-weth", lambda n: f"https://{n}.example.invalid")
    polygon = build_scenario("polygon-dai-wmatic", lambda n: f"https://{n}.example.invalid")

    assert goerli.fork.pinned_block == 8446620
    assert mainnet.fork.pinned_block == polygon.fork.pinned_block == 16572390
    assert goerli.params.amount == mainnet.params.amount == 1_000_000 * ETHER
    assert polygon.params.amount == 10_000 * ETHER
    assert {s.params.fee for s in (goerli, mainnet, polygon)} == {FEE_TIER_030}
    assert [goerli.token_in.symbol, goerli.token_out.symbol] == ["UNI", "WETH"]
    assert [polygon.token_in.symbol, polygon.token_out.symbol] == ["DAI", "WMATIC"]
    assert polygon.fork.remote_endpoint == "https://polygon-mainnet.example.invalid"


def test_scenario_path_must_match_tokens(scenarios):
    scenario = scenarios["mainnet-dai-weth"]
    reversed_params = SwapParameters(path=list(reversed(scenario.params.path)), fee=3000, amount=1)
    with pytest.raises(ValidationError):
        ScenarioSpec(**{**scenario.model_dump(), "params": reversed_params.model_dump()})


def test_scenarios_need_an_api_key_by_default(monkeypatch):
    from forkswap.core.config import settings

    monkeypatch.setattr(settings, "INFURA_API_KEY", None)
    with pytest.raises(ConfigurationError):
        build_scenario("mainnet-dai-weth")


@pytest.mark.asyncio
async def test_impersonation_is_released_after_success(ctx, mock_backend, scenarios):
    await run_scenario(ctx, scenarios["mainnet-dai-weth"])
    assert mock_backend.impersonated == set()


@pytest.mark.asyncio
async def test_impersonation_is_released_after_a_failed_step(ctx, mock_backend, scenarios):
    """
    GIVEN a holder whose swap reverts
    WHEN the scenario fails
    THEN the revert propagates and the holder is no longer impersonated.
    """
    scenario = scenarios["goerli-uni-weth"]
    remote = mock_backend.remote_states[(scenario.fork.remote_endpoint, scenario.fork.pinned_block)]
    remote.balances[scenario.token_in.address][scenario.actor] = 0

    with pytest.raises(ActionReverted):
        await run_scenario(ctx, scenario, check_solvency=False)

    assert ctx.phase is ScenarioPhase.FAILED
    assert scenario.actor not in mock_backend.impersonated
