# /forkswap/adapters/base.py
# The minimal surface the harness needs from a forking execution environment.

from typing import Any, Dict, List, Sequence


class AbstractForkBackend:
    """
    Interface every fork backend must implement.
    All state-mutating calls return only once the node has applied them, so
    the harness can treat each call as one completed step.
    """
    async def connect(self) -> None:
        """Probe the node; raise EnvironmentUnavailable if it cannot be reached."""
        raise NotImplementedError

    async def reset(self, remote_endpoint: str, block_number: int) -> None:
        """Replace world state with a replica of *remote_endpoint* at *block_number*."""
        raise NotImplementedError

    async def impersonate(self, address: str) -> None:
        raise NotImplementedError

    async def stop_impersonating(self, address: str) -> None:
        raise NotImplementedError

    async def block_number(self) -> int:
        raise NotImplementedError

    async def get_code(self, address: str) -> bytes:
        raise NotImplementedError

    async def native_balance(self, address: str) -> int:
        raise NotImplementedError

    async def deploy(self, abi: List[Dict[str, Any]], bytecode: str, args: Sequence[Any]) -> str:
        """Deploy a contract and return its address once the receipt is in."""
        raise NotImplementedError

    async def balance_of(self, token: str, owner: str) -> int:
        raise NotImplementedError

    async def approve(self, owner: str, token: str, spender: str, amount: int) -> str:
        """Send ``approve(spender, amount)`` from *owner*; return the mined tx hash."""
        raise NotImplementedError

    async def swap(
        self, sender: str, contract: str, abi: List[Dict[str, Any]],
        path: Sequence[str], fee: int, amount: int,
    ) -> str:
        """Send ``swap(path, fee, amount)`` from *sender*; return the mined tx hash."""
        raise NotImplementedError

    async def close(self) -> None:
        pass
