# /forkswap/core/scenario.py
# One driver for every fork swap scenario:
# fork -> impersonate -> deploy -> snapshot -> approve -> swap -> snapshot -> verify.
import asyncio

from forkswap.core.context import ForkContext
from forkswap.core.errors import HarnessError
from forkswap.core.harness import (
    approve_allowance,
    assert_directional_change,
    assert_solvency,
    deploy_under_test,
    execute_swap,
    impersonate,
    reset_fork,
    snapshot_balance,
    stop_impersonating,
    verify_fixture,
)
from forkswap.core.logger import bind_scenario, get_logger, unbind_scenario
from forkswap.core.models import Direction, ImpersonatedActor, ScenarioResult, ScenarioSpec

log = get_logger(__name__)


async def _release_actor(ctx: ForkContext, actor: ImpersonatedActor):
    """Stops impersonating after a failed step. The step's error is the one that propagates."""
    try:
        await asyncio.wait_for(ctx.backend.stop_impersonating(actor.address), timeout=ctx.step_timeout)
    except (HarnessError, asyncio.TimeoutError) as e:
        log.warning("IMPERSONATION_RELEASE_FAILED", actor=actor.address, error=str(e))


async def run_scenario(
    ctx: ForkContext, scenario: ScenarioSpec, artifact_name: str | None = None, check_solvency: bool = True,
) -> ScenarioResult:
    """Runs *scenario* end to end on *ctx* and returns the four balance snapshots.

    Any failing step raises its HarnessError and leaves *ctx* in FAILED.
    """
    bind_scenario(scenario.name, scenario.network)
    actor = None
    try:
        log.info("SCENARIO_STARTED", block=scenario.fork.pinned_block, actor=scenario.actor)
        await reset_fork(ctx, scenario.fork)
        await verify_fixture(ctx, scenario)
        actor = await impersonate(ctx, scenario.actor)
        swapper = await deploy_under_test(ctx, [scenario.router], artifact_name)

        before_in = await snapshot_balance(ctx, scenario.token_in, actor)
        before_out = await snapshot_balance(ctx, scenario.token_out, actor)
        log.info(
            "BALANCES_BEFORE_SWAP",
            **{scenario.token_in.symbol: scenario.token_in.units(before_in.value),
               scenario.token_out.symbol: scenario.token_out.units(before_out.value)},
        )

        if check_solvency:
            await assert_solvency(ctx, actor, scenario.token_in, scenario.params.amount)
        await approve_allowance(ctx, actor, scenario.token_in, swapper, scenario.params.amount)
        await execute_swap(ctx, actor, swapper, scenario.params)

        after_in = await snapshot_balance(ctx, scenario.token_in, actor)
        after_out = await snapshot_balance(ctx, scenario.token_out, actor)
        log.info(
            "BALANCES_AFTER_SWAP",
            **{scenario.token_in.symbol: scenario.token_in.units(after_in.value),
               scenario.token_out.symbol: scenario.token_out.units(after_out.value)},
        )

        ctx.check("verify", assert_directional_change, before_in, after_in, Direction.DECREASE)
        ctx.check("verify", assert_directional_change, before_out, after_out, Direction.INCREASE)
        await stop_impersonating(ctx, actor)
        ctx.mark_verified()
        log.info("SCENARIO_VERIFIED")
        return ScenarioResult(
            name=scenario.name, before_in=before_in, before_out=before_out,
            after_in=after_in, after_out=after_out,
        )
    finally:
        if actor is not None and ctx.failed:
            await _release_actor(ctx, actor)
        unbind_scenario()
