# /forkswap/adapters/node.py
# Fork backend driving a local anvil/hardhat node over JSON-RPC with AsyncWeb3.
import asyncio
from typing import Any, Dict, List, Sequence

import aiohttp
from web3 import AsyncWeb3, Web3
from web3.contract.async_contract import AsyncContract
from web3.exceptions import (
    BadFunctionCallOutput,
    BadResponseFormat,
    ContractLogicError,
    TimeExhausted,
    Web3Exception,
    Web3RPCError,
    Web3ValidationError,
)
from web3.types import RPCEndpoint

from forkswap.abis import ERC20_ABI
from forkswap.adapters.base import AbstractForkBackend
from forkswap.core.config import settings
from forkswap.core.errors import (
    ActionReverted,
    DeploymentFailed,
    EnvironmentUnavailable,
    FixtureInvalid,
    ImpersonationDenied,
)
from forkswap.core.logger import get_logger

log = get_logger(__name__)

NETWORK_ERRORS = (aiohttp.ClientError, OSError, asyncio.TimeoutError)
# The node answered, but with a JSON-RPC error (upstream archive timeout, unindexed block).
NODE_ERRORS = (Web3RPCError, BadResponseFormat)


def rpc_error_message(response: Dict[str, Any]) -> str | None:
    """Returns the error message of a raw JSON-RPC response, or None on success."""
    error = response.get("error") if isinstance(response, dict) else None
    if not error:
        return None
    if isinstance(error, dict):
        return f"{error.get('message', 'unknown error')} (code {error.get('code')})"
    return str(error)


def revert_reason(exc: Exception) -> str:
    message = getattr(exc, "message", None) or str(exc)
    return message.replace("execution reverted: ", "").strip() or "execution reverted"


class Web3ForkBackend(AbstractForkBackend):
    """
    Talks to a forking node. ``flavor`` selects the cheat-code namespace:
    ``anvil_reset`` / ``anvil_impersonateAccount`` or their ``hardhat_`` twins.
    """
    def __init__(self, node_url: str | None = None, flavor: str | None = None, receipt_timeout: float | None = None):
        self.node_url = node_url or settings.FORK_NODE_URL
        self.flavor = flavor or settings.FORK_NODE_FLAVOR
        self.receipt_timeout = receipt_timeout or settings.STEP_TIMEOUT_SECONDS
        self.w3 = AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(self.node_url, request_kwargs={"timeout": self.receipt_timeout})
        )
        self._deployer: str | None = None

    def _cheat(self, name: str) -> RPCEndpoint:
        return RPCEndpoint(f"{self.flavor}_{name}")

    async def _request(self, method: RPCEndpoint, params: list) -> Dict[str, Any]:
        try:
            return await self.w3.provider.make_request(method, params)
        except NETWORK_ERRORS as e:
            raise EnvironmentUnavailable(f"{method} failed against {self.node_url}: {e}") from e

    async def connect(self) -> None:
        try:
            connected = await self.w3.is_connected()
        except NETWORK_ERRORS:
            connected = False
        if not connected:
            log.warning("FORK_NODE_UNREACHABLE", url=self.node_url)
            raise EnvironmentUnavailable(f"fork node at {self.node_url} is unreachable")
        log.info("FORK_NODE_CONNECTED", url=self.node_url, flavor=self.flavor)

    async def reset(self, remote_endpoint: str, block_number: int) -> None:
        params = [{"forking": {"jsonRpcUrl": remote_endpoint, "blockNumber": block_number}}]
        response = await self._request(self._cheat("reset"), params)
        error = rpc_error_message(response)
        if error:
            raise EnvironmentUnavailable(f"fork at block {block_number} could not be materialized: {error}")
        self._deployer = None
        head = await self.block_number()
        if head < block_number:
            raise EnvironmentUnavailable(f"fork head {head} is behind pinned block {block_number}")

    async def impersonate(self, address: str) -> None:
        response = await self._request(self._cheat("impersonateAccount"), [address])
        error = rpc_error_message(response)
        if error:
            raise ImpersonationDenied(f"node refused to impersonate {address}: {error}")

    async def stop_impersonating(self, address: str) -> None:
        response = await self._request(self._cheat("stopImpersonatingAccount"), [address])
        error = rpc_error_message(response)
        if error:
            log.warning("STOP_IMPERSONATING_FAILED", address=address, error=error)

    async def block_number(self) -> int:
        try:
            return await self.w3.eth.block_number
        except NETWORK_ERRORS + NODE_ERRORS as e:
            raise EnvironmentUnavailable(f"block number unavailable: {e}") from e

    async def get_code(self, address: str) -> bytes:
        try:
            return bytes(await self.w3.eth.get_code(Web3.to_checksum_address(address)))
        except NETWORK_ERRORS + NODE_ERRORS as e:
            raise EnvironmentUnavailable(f"code lookup for {address} failed: {e}") from e

    async def native_balance(self, address: str) -> int:
        try:
            return await self.w3.eth.get_balance(Web3.to_checksum_address(address))
        except NETWORK_ERRORS + NODE_ERRORS as e:
            raise EnvironmentUnavailable(f"balance lookup for {address} failed: {e}") from e

    async def _get_deployer(self) -> str:
        if self._deployer is None:
            try:
                accounts = await self.w3.eth.accounts
            except NETWORK_ERRORS as e:
                raise EnvironmentUnavailable(f"account listing failed against {self.node_url}: {e}") from e
            except NODE_ERRORS as e:
                raise DeploymentFailed(f"node refused to list unlocked accounts: {e}") from e
            if not accounts:
                raise DeploymentFailed("node exposes no unlocked account to deploy from")
            self._deployer = accounts[0]
        return self._deployer

    async def _wait(self, tx_hash) -> Dict[str, Any]:
        try:
            return await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        except TimeExhausted as e:
            raise EnvironmentUnavailable(f"no receipt for {Web3.to_hex(tx_hash)} after {self.receipt_timeout}s") from e
        except NETWORK_ERRORS + NODE_ERRORS as e:
            raise EnvironmentUnavailable(f"receipt lookup for {Web3.to_hex(tx_hash)} failed: {e}") from e

    async def deploy(self, abi: List[Dict[str, Any]], bytecode: str, args: Sequence[Any]) -> str:
        deployer = await self._get_deployer()
        factory = self.w3.eth.contract(abi=abi, bytecode=bytecode)
        try:
            tx_hash = await factory.constructor(*args).transact({"from": deployer})
        except (Web3ValidationError, TypeError, ValueError) as e:
            raise DeploymentFailed(f"constructor arguments rejected: {e}") from e
        except ContractLogicError as e:
            raise DeploymentFailed(f"constructor reverted: {revert_reason(e)}") from e
        except NETWORK_ERRORS as e:
            raise EnvironmentUnavailable(f"deployment could not be sent: {e}") from e
        except Web3Exception as e:
            raise DeploymentFailed(f"deployment rejected by node: {e}") from e
        receipt = await self._wait(tx_hash)
        address = receipt.get("contractAddress")
        if receipt["status"] != 1 or not address:
            raise DeploymentFailed(f"deployment transaction {Web3.to_hex(tx_hash)} failed")
        log.debug("CONTRACT_DEPLOYED", address=address, deployer=deployer, gas_used=receipt.get("gasUsed"))
        return address

    def _token(self, token: str) -> AsyncContract:
        return self.w3.eth.contract(address=Web3.to_checksum_address(token), abi=ERC20_ABI)

    async def balance_of(self, token: str, owner: str) -> int:
        try:
            return await self._token(token).functions.balanceOf(Web3.to_checksum_address(owner)).call()
        except (BadFunctionCallOutput, ContractLogicError) as e:
            raise FixtureInvalid(f"{token} does not answer balanceOf: {e}") from e
        except NETWORK_ERRORS + NODE_ERRORS as e:
            raise EnvironmentUnavailable(f"balanceOf({owner}) on {token} failed: {e}") from e

    async def _transact(self, action: str, call, sender: str) -> str:
        try:
            tx_hash = await call.transact({"from": sender})
        except ContractLogicError as e:
            raise ActionReverted(action, revert_reason(e)) from e
        except NETWORK_ERRORS as e:
            raise EnvironmentUnavailable(f"{action} could not be sent: {e}") from e
        except Web3Exception as e:
            # Node-side rejections (unknown sender, out of gas funds) surface here.
            raise ActionReverted(action, str(e)) from e
        receipt = await self._wait(tx_hash)
        if receipt["status"] != 1:
            raise ActionReverted(action, f"transaction {Web3.to_hex(tx_hash)} reverted")
        log.debug("TRANSACTION_MINED", action=action, tx_hash=Web3.to_hex(tx_hash), block=receipt.get("blockNumber"))
        return Web3.to_hex(tx_hash)

    async def approve(self, owner: str, token: str, spender: str, amount: int) -> str:
        call = self._token(token).functions.approve(Web3.to_checksum_address(spender), amount)
        return await self._transact("approve", call, Web3.to_checksum_address(owner))

    async def swap(
        self, sender: str, contract: str, abi: List[Dict[str, Any]],
        path: Sequence[str], fee: int, amount: int,
    ) -> str:
        swapper = self.w3.eth.contract(address=Web3.to_checksum_address(contract), abi=abi)
        call = swapper.functions.swap([Web3.to_checksum_address(p) for p in path], fee, amount)
        return await self._transact("swap", call, Web3.to_checksum_address(sender))

    async def close(self) -> None:
        disconnect = getattr(self.w3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
