# /forkswap/core/harness.py
# Harness operations. Each one is a single awaited step on an explicit ForkContext.
from typing import Sequence
from urllib.parse import urlsplit

from forkswap.core.artifacts import check_constructor_args, load_artifact
from forkswap.core.config import settings
from forkswap.core.context import ForkContext, ScenarioPhase
from forkswap.core.errors import AssertionFailed, FixtureInvalid, InsufficientFunds
from forkswap.core.logger import get_logger
from forkswap.core.models import (
    BalanceSnapshot,
    ContractHandle,
    Direction,
    ForkSpec,
    ImpersonatedActor,
    ScenarioSpec,
    SwapParameters,
    TokenHandle,
    normalize_address,
)

log = get_logger(__name__)


def redact_endpoint(url: str) -> str:
    """Hides the credential path segment of a provider URL (``/v3/<key>``)."""
    parts = urlsplit(url)
    segments = parts.path.rstrip("/").split("/")
    if len(segments) > 2:
        segments[-1] = "***"
    return f"{parts.scheme}://{parts.netloc}{'/'.join(segments)}"


def _owner_address(owner) -> str:
    if isinstance(owner, ImpersonatedActor):
        return owner.address
    return normalize_address(owner)


async def reset_fork(ctx: ForkContext, spec: ForkSpec) -> None:
    """Replaces the replica's world state with ``spec.remote_endpoint`` at ``spec.pinned_block``.

    Safe to call at the start of every scenario: whatever a previous scenario
    did (balances, allowances, deployed contracts) is discarded.
    """
    log.info("FORK_RESET_REQUESTED", endpoint=redact_endpoint(spec.remote_endpoint), block=spec.pinned_block)
    await ctx.run_step(
        "reset_fork",
        ctx.backend.reset(spec.remote_endpoint, spec.pinned_block),
        advance_to=ScenarioPhase.FORKED,
    )
    ctx.fork = spec


async def impersonate(ctx: ForkContext, address: str) -> ImpersonatedActor:
    ctx.require_fork("impersonate")
    actor = ctx.check("validate_actor", ImpersonatedActor.model_validate, {"address": address})
    await ctx.run_step(
        "impersonate",
        ctx.backend.impersonate(actor.address),
        advance_to=ScenarioPhase.ACTOR_IMPERSONATED,
    )
    log.info("ACTOR_IMPERSONATED", actor=actor.address)
    return actor


async def stop_impersonating(ctx: ForkContext, actor: ImpersonatedActor) -> None:
    ctx.require_fork("stop_impersonating")
    await ctx.run_step("stop_impersonating", ctx.backend.stop_impersonating(actor.address))


async def deploy_under_test(
    ctx: ForkContext, constructor_args: Sequence, artifact_name: str | None = None,
) -> ContractHandle:
    """Deploys a fresh instance of the contract under test into the replica."""
    ctx.require_fork("deploy_under_test")
    name = artifact_name or settings.SWAPPER_ARTIFACT

    async def _deploy() -> ContractHandle:
        artifact = load_artifact(name, ctx.artifacts_dir)
        args = check_constructor_args(artifact, constructor_args)
        address = await ctx.backend.deploy(artifact.abi, artifact.bytecode, args)
        return ContractHandle(name=name, address=address, abi=artifact.abi)

    handle = await ctx.run_step("deploy_under_test", _deploy(), advance_to=ScenarioPhase.CONTRACT_DEPLOYED)
    log.info("CONTRACT_UNDER_TEST_DEPLOYED", name=name, address=handle.address)
    return handle


async def snapshot_balance(ctx: ForkContext, token: TokenHandle, owner) -> BalanceSnapshot:
    """Reads ``token.balanceOf(owner)`` from the latest committed state. No side effects."""
    ctx.require_fork("snapshot_balance")
    owner_address = ctx.check("validate_owner", _owner_address, owner)

    async def _read() -> BalanceSnapshot:
        value = await ctx.backend.balance_of(token.address, owner_address)
        block = await ctx.backend.block_number()
        return BalanceSnapshot(token=token, owner=owner_address, value=value, block_number=block)

    snap = await ctx.run_step("snapshot_balance", _read())
    log.debug("BALANCE_SNAPSHOT", token=token.symbol, owner=owner_address, value=snap.value, block=snap.block_number)
    return snap


async def approve_allowance(
    ctx: ForkContext, actor: ImpersonatedActor, token: TokenHandle, spender: ContractHandle, amount: int,
) -> str:
    ctx.require_fork("approve_allowance")
    tx_hash = await ctx.run_step(
        "approve_allowance",
        ctx.backend.approve(actor.address, token.address, spender.address, amount),
        advance_to=ScenarioPhase.ALLOWANCE_GRANTED,
    )
    log.info("ALLOWANCE_GRANTED", token=token.symbol, spender=spender.address, amount=token.units(amount), tx_hash=tx_hash)
    return tx_hash


async def execute_swap(
    ctx: ForkContext, actor: ImpersonatedActor, contract: ContractHandle, params: SwapParameters,
) -> str:
    """Calls ``swap(path, fee, amount)`` as *actor*. A revert fails the scenario; nothing is retried."""
    ctx.require_fork("execute_swap")
    tx_hash = await ctx.run_step(
        "execute_swap",
        ctx.backend.swap(actor.address, contract.address, contract.abi, params.path, params.fee, params.amount),
        advance_to=ScenarioPhase.ACTION_EXECUTED,
    )
    log.info("SWAP_EXECUTED", path=params.path, fee=params.fee, amount=params.amount, tx_hash=tx_hash)
    return tx_hash


def assert_directional_change(before: BalanceSnapshot, after: BalanceSnapshot, direction: Direction) -> None:
    """Equal balances fail in both directions: a real swap moves both sides."""
    if before.token.address != after.token.address or before.owner != after.owner:
        raise ValueError("snapshots must refer to the same token and owner")
    direction = Direction(direction)
    moved = after.value > before.value if direction is Direction.INCREASE else after.value < before.value
    if not moved:
        raise AssertionFailed(direction.value, before.value, after.value, token=before.token.symbol)


async def assert_solvency(
    ctx: ForkContext, actor: ImpersonatedActor, token: TokenHandle, amount: int, min_native: int = 1,
) -> None:
    """Fails with InsufficientFunds unless *actor* can fund *amount* of *token* and pay gas."""
    ctx.require_fork("assert_solvency")

    async def _check():
        held = await ctx.backend.balance_of(token.address, actor.address)
        if held < amount:
            raise InsufficientFunds(actor.address, token.symbol, amount, held)
        native = await ctx.backend.native_balance(actor.address)
        if native < min_native:
            raise InsufficientFunds(actor.address, "native gas token", min_native, native)

    await ctx.run_step("assert_solvency", _check())


async def verify_fixture(ctx: ForkContext, scenario: ScenarioSpec) -> None:
    """Every token and the router must already have code at the pinned block."""
    ctx.require_fork("verify_fixture")
    targets = {
        scenario.token_in.symbol: scenario.token_in.address,
        scenario.token_out.symbol: scenario.token_out.address,
        "router": scenario.router,
    }

    async def _check():
        for label, address in targets.items():
            code = await ctx.backend.get_code(address)
            if not code:
                raise FixtureInvalid(
                    f"{label} {address} has no code at block {scenario.fork.pinned_block} on {scenario.network}"
                )

    await ctx.run_step("verify_fixture", _check())
