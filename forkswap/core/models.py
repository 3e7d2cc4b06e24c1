# /forkswap/core/models.py
# Scenario-scoped values. Nothing here is persisted; all state lives in the forked replica.
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from web3 import Web3

from forkswap.core.logger import get_logger

log = get_logger(__name__)


def normalize_address(value: str) -> str:
    """Validates a 20-byte hex address and returns its checksummed form.

    A mixed-case literal with a bad EIP-55 checksum is logged and normalized,
    never rewritten to some other address.
    """
    if not isinstance(value, str):
        raise ValueError(f"address must be a hex string, got {type(value).__name__}")
    raw = value.strip()
    if not raw.startswith("0x") or not Web3.is_address(raw.lower()):
        raise ValueError(f"malformed address {value!r}: expected 0x followed by 40 hex digits")
    checksummed = Web3.to_checksum_address(raw.lower())
    body = raw[2:]
    if body != body.lower() and body != body.upper() and raw != checksummed:
        log.warning("FIXTURE_ADDRESS_CHECKSUM_MISMATCH", literal=raw, checksummed=checksummed)
    return checksummed


def format_units(value: int, decimals: int = 18, places: int = 2) -> str:
    scaled = Decimal(value) / (Decimal(10) ** decimals)
    return f"{scaled:.{places}f}"


class Direction(str, Enum):
    INCREASE = "INCREASE"
    DECREASE = "DECREASE"


class ForkSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    remote_endpoint: str
    pinned_block: int = Field(ge=0)

    @field_validator("remote_endpoint")
    @classmethod
    def check_endpoint(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"remote endpoint must be an http(s) URL, got {v!r}")
        return v


class ImpersonatedActor(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str

    @field_validator("address")
    @classmethod
    def check_address(cls, v: str) -> str:
        return normalize_address(v)


class TokenHandle(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    symbol: str
    decimals: int = Field(default=18, ge=0)

    @field_validator("address")
    @classmethod
    def check_address(cls, v: str) -> str:
        return normalize_address(v)

    def units(self, amount: int) -> str:
        return format_units(amount, self.decimals)


class ContractHandle(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    address: str
    abi: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator("address")
    @classmethod
    def check_address(cls, v: str) -> str:
        return normalize_address(v)


class SwapParameters(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: List[str]
    fee: int = Field(ge=0)
    amount: int = Field(ge=0)

    @field_validator("path")
    @classmethod
    def check_path(cls, v: List[str]) -> List[str]:
        if len(v) < 2:
            raise ValueError("swap path needs at least two tokens")
        return [normalize_address(a) for a in v]

    @property
    def token_in(self) -> str:
        return self.path[0]

    @property
    def token_out(self) -> str:
        return self.path[-1]


class BalanceSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: TokenHandle
    owner: str
    value: int = Field(ge=0)
    block_number: int | None = None

    def __str__(self) -> str:
        return f"{self.token.symbol} balance of {self.owner}: {self.token.units(self.value)}"


class ScenarioSpec(BaseModel):
    """One fork swap scenario: where to fork, who acts, and what gets swapped."""
    model_config = ConfigDict(frozen=True)

    name: str
    network: str
    fork: ForkSpec
    actor: str
    token_in: TokenHandle
    token_out: TokenHandle
    router: str
    params: SwapParameters

    @field_validator("actor", "router")
    @classmethod
    def check_addresses(cls, v: str) -> str:
        return normalize_address(v)

    @model_validator(mode="after")
    def check_path_matches_tokens(self) -> "ScenarioSpec":
        if self.params.token_in != self.token_in.address:
            raise ValueError("params.path[0] must be the token being spent")
        if self.params.token_out != self.token_out.address:
            raise ValueError("params.path[-1] must be the token being received")
        return self


class ScenarioResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    before_in: BalanceSnapshot
    before_out: BalanceSnapshot
    after_in: BalanceSnapshot
    after_out: BalanceSnapshot
