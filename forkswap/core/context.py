# /forkswap/core/context.py
# Explicit per-scenario handle on the forked environment. Every harness
# operation takes one of these instead of reaching for a global runtime.
import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, List, TypeVar

from forkswap.adapters.base import AbstractForkBackend
from forkswap.core.config import settings
from forkswap.core.decorators import retriable_node_probe
from forkswap.core.errors import EnvironmentUnavailable, HarnessError, ScenarioAborted
from forkswap.core.logger import SCENARIOS_FAILED, SCENARIOS_PASSED, STEPS_EXECUTED, get_logger
from forkswap.core.models import ForkSpec

log = get_logger(__name__)

T = TypeVar("T")


class ScenarioPhase(str, Enum):
    IDLE = "Idle"
    FORKED = "Forked"
    ACTOR_IMPERSONATED = "ActorImpersonated"
    CONTRACT_DEPLOYED = "ContractDeployed"
    ALLOWANCE_GRANTED = "AllowanceGranted"
    ACTION_EXECUTED = "ActionExecuted"
    VERIFIED = "Verified"
    FAILED = "Failed"


class ForkContext:
    """
    Owns one forked replica for the duration of a scenario.

    Steps are awaited one at a time, each bounded by ``step_timeout``; a step
    that overruns fails with EnvironmentUnavailable. The first failure moves
    the context to FAILED and every later step is refused.
    """
    def __init__(self, backend: AbstractForkBackend, step_timeout: float | None = None,
                 artifacts_dir: str | None = None):
        self.backend = backend
        self.step_timeout = step_timeout or settings.STEP_TIMEOUT_SECONDS
        self.artifacts_dir = artifacts_dir
        self.phase = ScenarioPhase.IDLE
        self.fork: ForkSpec | None = None
        self.failure: BaseException | None = None
        self.history: List[ScenarioPhase] = [ScenarioPhase.IDLE]

    @property
    def failed(self) -> bool:
        return self.phase is ScenarioPhase.FAILED

    def advance(self, phase: ScenarioPhase):
        if self.failed:
            raise ScenarioAborted(f"cannot enter {phase.value}: scenario already failed")
        log.debug("PHASE_TRANSITION", source=self.phase.value, target=phase.value)
        self.phase = phase
        self.history.append(phase)

    def fail(self, step: str, error: BaseException):
        if self.failed:
            return
        kind = getattr(error, "kind", type(error).__name__)
        log.error("SCENARIO_STEP_FAILED", step=step, phase=self.phase.value, kind=kind, error=str(error))
        self.phase = ScenarioPhase.FAILED
        self.history.append(ScenarioPhase.FAILED)
        self.failure = error
        SCENARIOS_FAILED.labels(kind).inc()

    def mark_verified(self):
        self.advance(ScenarioPhase.VERIFIED)
        SCENARIOS_PASSED.inc()

    def require_fork(self, step: str):
        if self.failed:
            raise ScenarioAborted(f"{step} refused: scenario already failed at {self.failure!r}")
        if self.fork is None:
            error = EnvironmentUnavailable(f"{step} needs a materialized fork; call reset_fork first")
            self.fail(step, error)
            raise error

    async def run_step(self, step: str, action: Awaitable[T], advance_to: ScenarioPhase | None = None) -> T:
        if self.failed:
            if asyncio.iscoroutine(action):
                action.close()
            raise ScenarioAborted(f"{step} refused: scenario already failed at {self.failure!r}")
        try:
            result = await asyncio.wait_for(action, timeout=self.step_timeout)
        except asyncio.TimeoutError as e:
            error = EnvironmentUnavailable(f"{step} did not complete within {self.step_timeout}s")
            self.fail(step, error)
            raise error from e
        except Exception as e:
            self.fail(step, e)
            raise
        STEPS_EXECUTED.labels(step).inc()
        if advance_to is not None:
            self.advance(advance_to)
        return result

    def check(self, step: str, fn: Callable[..., T], *args: Any) -> T:
        """Synchronous counterpart of ``run_step`` for pure checks."""
        if self.failed:
            raise ScenarioAborted(f"{step} refused: scenario already failed at {self.failure!r}")
        try:
            result = fn(*args)
        except (HarnessError, AssertionError, ValueError) as e:
            self.fail(step, e)
            raise
        STEPS_EXECUTED.labels(step).inc()
        return result

    async def close(self):
        await self.backend.close()


@retriable_node_probe
async def probe_backend(backend: AbstractForkBackend) -> None:
    await backend.connect()


async def open_context(backend: AbstractForkBackend | None = None, **kwargs) -> ForkContext:
    """Connects *backend* (a ``Web3ForkBackend`` on the configured node by default).

    The probe is retried up to ``NODE_CONNECT_ATTEMPTS`` times; the last
    EnvironmentUnavailable propagates.
    """
    if backend is None:
        from forkswap.adapters.node import Web3ForkBackend
        backend = Web3ForkBackend()
    await probe_backend(backend)
    return ForkContext(backend, **kwargs)
