# /forkswap/adapters/mock.py
# In-memory fork backend for unit testing the harness without a node.
# Models ERC20 ledgers, allowances, impersonation and a swap executor that
# fills at a fixed rate per token pair.

import asyncio
import copy
from decimal import Decimal
from typing import Any, Dict, List, Sequence, Tuple

from web3 import Web3

from forkswap.adapters.base import AbstractForkBackend
from forkswap.core.errors import (
    ActionReverted,
    DeploymentFailed,
    EnvironmentUnavailable,
    FixtureInvalid,
    ImpersonationDenied,
)
from forkswap.core.logger import get_logger

log = get_logger(__name__)

FEE_DENOMINATOR = 1_000_000
DEFAULT_DEPLOYER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


def _cs(address: str) -> str:
    return Web3.to_checksum_address(address.lower())


class MockChainState:
    """One replica: token ledgers, native balances and addresses holding code."""
    def __init__(self, block: int, balances: Dict[str, Dict[str, int]] | None = None,
                 native: Dict[str, int] | None = None, contracts: Sequence[str] = ()):
        self.block = block
        self.balances: Dict[str, Dict[str, int]] = {
            _cs(token): {_cs(owner): amount for owner, amount in holders.items()}
            for token, holders in (balances or {}).items()
        }
        self.native: Dict[str, int] = {_cs(a): v for a, v in (native or {}).items()}
        self.code: Dict[str, Dict[str, Any]] = {_cs(a): {"kind": "external"} for a in contracts}
        for token in self.balances:
            self.code.setdefault(token, {"kind": "erc20"})
        # token -> owner -> spender -> amount
        self.allowances: Dict[str, Dict[str, Dict[str, int]]] = {}

    def balance(self, token: str, owner: str) -> int:
        return self.balances.get(_cs(token), {}).get(_cs(owner), 0)

    def credit(self, token: str, owner: str, amount: int):
        ledger = self.balances.setdefault(_cs(token), {})
        ledger[_cs(owner)] = ledger.get(_cs(owner), 0) + amount

    def allowance(self, token: str, owner: str, spender: str) -> int:
        return self.allowances.get(_cs(token), {}).get(_cs(owner), {}).get(_cs(spender), 0)


class MockForkBackend(AbstractForkBackend):
    """
    Remote states are registered per (endpoint, block); ``reset`` hands out a
    deep copy so nothing a scenario does can leak into the next one.
    """
    def __init__(self, swap_rates: Dict[Tuple[str, str], Decimal] | None = None,
                 supports_impersonation: bool = True, latency: float = 0.0,
                 reachable: bool = True, deployer: str = DEFAULT_DEPLOYER):
        self.remote_states: Dict[Tuple[str, int], MockChainState] = {}
        self.swap_rates = {(_cs(a), _cs(b)): Decimal(r) for (a, b), r in (swap_rates or {}).items()}
        self.supports_impersonation = supports_impersonation
        self.latency = latency
        self.reachable = reachable
        self.deployer = _cs(deployer)
        self.state: MockChainState | None = None
        self.impersonated: set = set()
        self.sent_transactions: List[Dict[str, Any]] = []
        self.reset_calls = 0
        self.connect_attempts = 0
        self._deploy_count = 0
        log.info("MOCK_FORK_BACKEND_INITIALIZED", remotes=len(self.remote_states))

    def add_remote(self, endpoint: str, block: int, balances=None, native=None, contracts=()) -> MockChainState:
        remote = MockChainState(block, balances=balances, native=native, contracts=contracts)
        self.remote_states[(endpoint, block)] = remote
        return remote

    def set_rate(self, token_in: str, token_out: str, rate):
        self.swap_rates[(_cs(token_in), _cs(token_out))] = Decimal(rate)

    async def _tick(self):
        if self.latency:
            await asyncio.sleep(self.latency)
        if not self.reachable:
            raise EnvironmentUnavailable("mock node is unreachable")

    def _replica(self) -> MockChainState:
        if self.state is None:
            raise EnvironmentUnavailable("no fork has been materialized")
        return self.state

    def _record(self, action: str, sender: str, **data) -> str:
        replica = self._replica()
        replica.block += 1
        tx_hash = "0x" + f"{len(self.sent_transactions) + 1:064x}"
        self.sent_transactions.append({"hash": tx_hash, "action": action, "from": sender, "block": replica.block, **data})
        log.info("MOCK_TRANSACTION_MINED", action=action, tx_hash=tx_hash)
        return tx_hash

    def _require_signer(self, action: str, sender: str):
        if _cs(sender) != self.deployer and _cs(sender) not in self.impersonated:
            raise ActionReverted(action, f"no signer available for {sender}")
        if self._replica().native.get(_cs(sender), 0) <= 0:
            raise ActionReverted(action, "sender doesn't have enough funds to send tx")

    async def connect(self) -> None:
        self.connect_attempts += 1
        await self._tick()

    async def reset(self, remote_endpoint: str, block_number: int) -> None:
        await self._tick()
        remote = self.remote_states.get((remote_endpoint, block_number))
        if remote is None:
            raise EnvironmentUnavailable(f"block {block_number} is not available from {remote_endpoint}")
        self.state = copy.deepcopy(remote)
        self.impersonated = set()
        self.reset_calls += 1

    async def impersonate(self, address: str) -> None:
        await self._tick()
        if not self.supports_impersonation:
            raise ImpersonationDenied(f"impersonation is not supported on this network ({address})")
        self._replica()
        self.impersonated.add(_cs(address))

    async def stop_impersonating(self, address: str) -> None:
        await self._tick()
        self.impersonated.discard(_cs(address))

    async def block_number(self) -> int:
        await self._tick()
        return self._replica().block

    async def get_code(self, address: str) -> bytes:
        await self._tick()
        return b"\x60\x80" if _cs(address) in self._replica().code else b""

    async def native_balance(self, address: str) -> int:
        await self._tick()
        return self._replica().native.get(_cs(address), 0)

    async def deploy(self, abi: List[Dict[str, Any]], bytecode: str, args: Sequence[Any]) -> str:
        await self._tick()
        replica = self._replica()
        if not bytecode or bytecode == "0x":
            raise DeploymentFailed("empty bytecode")
        self._deploy_count += 1
        address = _cs("0x" + f"{0xC0DE0000 + self._deploy_count:040x}")
        replica.code[address] = {"kind": "swapper", "router": _cs(args[0]) if args else None}
        self._record("deploy", self.deployer, contract=address)
        return address

    async def balance_of(self, token: str, owner: str) -> int:
        await self._tick()
        replica = self._replica()
        if replica.code.get(_cs(token), {}).get("kind") != "erc20":
            raise FixtureInvalid(f"{token} does not answer balanceOf")
        return replica.balance(token, owner)

    async def approve(self, owner: str, token: str, spender: str, amount: int) -> str:
        await self._tick()
        replica = self._replica()
        self._require_signer("approve", owner)
        if replica.code.get(_cs(token), {}).get("kind") != "erc20":
            raise ActionReverted("approve", f"no token contract at {token}")
        per_owner = replica.allowances.setdefault(_cs(token), {}).setdefault(_cs(owner), {})
        per_owner[_cs(spender)] = amount
        return self._record("approve", owner, token=_cs(token), spender=_cs(spender), amount=amount)

    async def swap(
        self, sender: str, contract: str, abi: List[Dict[str, Any]],
        path: Sequence[str], fee: int, amount: int,
    ) -> str:
        await self._tick()
        replica = self._replica()
        self._require_signer("swap", sender)
        executor = replica.code.get(_cs(contract), {})
        if executor.get("kind") != "swapper":
            raise ActionReverted("swap", f"no swap executor at {contract}")
        if executor.get("router") not in replica.code:
            raise ActionReverted("swap", "router has no code on this fork")

        token_in, token_out = _cs(path[0]), _cs(path[-1])
        # TransferHelper reverts with "STF" when transferFrom fails.
        if replica.allowance(token_in, sender, contract) < amount:
            raise ActionReverted("swap", "STF")
        if replica.balance(token_in, sender) < amount:
            raise ActionReverted("swap", "STF")
        rate = self.swap_rates.get((token_in, token_out))
        if rate is None:
            raise ActionReverted("swap", f"no pool for {token_in} -> {token_out}")

        amount_out = int(Decimal(amount) * rate * (FEE_DENOMINATOR - fee) / FEE_DENOMINATOR)
        replica.credit(token_in, sender, -amount)
        replica.credit(token_out, sender, amount_out)
        granted = replica.allowances.setdefault(token_in, {}).setdefault(_cs(sender), {})
        granted[_cs(contract)] = granted.get(_cs(contract), 0) - amount
        return self._record("swap", sender, path=[token_in, token_out], fee=fee, amount_in=amount, amount_out=amount_out)
