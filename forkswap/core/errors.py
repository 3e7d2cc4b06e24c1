# /forkswap/core/errors.py
# Error taxonomy for a fork scenario. Every error is terminal for the scenario it occurs in.


class HarnessError(Exception):
    """Base class for every failure surfaced by the fork harness."""
    kind = "HarnessError"


class ConfigurationError(HarnessError):
    kind = "ConfigurationError"


class EnvironmentUnavailable(HarnessError):
    """The remote source is unreachable, the block is not indexed, or a step timed out."""
    kind = "EnvironmentUnavailable"


class ImpersonationDenied(HarnessError):
    kind = "ImpersonationDenied"


class DeploymentFailed(HarnessError):
    kind = "DeploymentFailed"


class FixtureInvalid(HarnessError):
    """A fixture address has no contract code on the forked replica."""
    kind = "FixtureInvalid"


class InsufficientFunds(HarnessError):
    kind = "InsufficientFunds"

    def __init__(self, owner: str, asset: str, required: int, available: int):
        self.owner = owner
        self.asset = asset
        self.required = required
        self.available = available
        super().__init__(
            f"{owner} holds {available} of {asset}, needs at least {required}"
        )


class ActionReverted(HarnessError):
    kind = "ActionReverted"

    def __init__(self, action: str, reason: str | None = None):
        self.action = action
        self.reason = reason or "unknown"
        super().__init__(f"{action} reverted: {self.reason}")


class AssertionFailed(HarnessError, AssertionError):
    """Raised when a balance did not move in the required direction."""
    kind = "AssertionFailed"

    def __init__(self, direction: str, before: int, after: int, token: str | None = None):
        self.direction = direction
        self.before = before
        self.after = after
        self.token = token
        label = f" of {token}" if token else ""
        super().__init__(
            f"expected balance{label} to {direction.lower()}: before={before} after={after}"
        )


class ScenarioAborted(HarnessError):
    """An operation was attempted on a context that already failed."""
    kind = "ScenarioAborted"
