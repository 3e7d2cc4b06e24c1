import pytest

from forkswap.core.errors import ActionReverted
from forkswap.core.logger import SCENARIOS_FAILED, SCENARIOS_PASSED, STEPS_EXECUTED, get_logger
from forkswap.core.scenario import run_scenario


@pytest.mark.asyncio
async def test_prometheus_counters_track_scenarios(ctx, scenarios):
    get_logger("test").info("UNIT_TEST_EVENT", data=1)

    passed = SCENARIOS_PASSED._value.get()
    swaps = STEPS_EXECUTED.labels("execute_swap")._value.get()

    await run_scenario(ctx, scenarios["mainnet-dai-weth"])

    assert SCENARIOS_PASSED._value.get() == passed + 1
    assert STEPS_EXECUTED.labels("execute_swap")._value.get() == swaps + 1


@pytest.mark.asyncio
async def test_failure_is_counted_once_per_scenario(ctx, mock_backend, scenarios):
    scenario = scenarios["goerli-uni-weth"]
    remote = mock_backend.remote_states[(scenario.fork.remote_endpoint, scenario.fork.pinned_block)]
    remote.balances[scenario.token_in.address][scenario.actor] = 0

    c = SCENARIOS_FAILED.labels("ActionReverted")
    initial = c._value.get()

    with pytest.raises(ActionReverted):
        await run_scenario(ctx, scenario, check_solvency=False)

    assert c._value.get() == initial + 1


@pytest.mark.asyncio
async def test_each_step_is_counted_once(ctx, scenarios):
    scenario = scenarios["mainnet-dai-weth"]
    impersonations = STEPS_EXECUTED.labels("impersonate")._value.get()
    snapshots = STEPS_EXECUTED.labels("snapshot_balance")._value.get()

    await run_scenario(ctx, scenario)

    assert STEPS_EXECUTED.labels("impersonate")._value.get() == impersonations + 1
    assert STEPS_EXECUTED.labels("snapshot_balance")._value.get() == snapshots + 4
