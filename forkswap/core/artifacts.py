# /forkswap/core/artifacts.py
# Loads compiled contract artifacts (Hardhat layout: {"abi": [...], "bytecode": "0x..."}).
import json
from pathlib import Path
from typing import Any, Dict, List, Sequence

from pydantic import BaseModel, ConfigDict, Field
from web3 import Web3

from forkswap.core.config import settings
from forkswap.core.errors import DeploymentFailed
from forkswap.core.logger import get_logger

log = get_logger(__name__)


class ContractArtifact(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    abi: List[Dict[str, Any]] = Field(default_factory=list)
    bytecode: str

    @property
    def constructor_inputs(self) -> List[Dict[str, Any]]:
        for entry in self.abi:
            if entry.get("type") == "constructor":
                return entry.get("inputs", [])
        return []

    def has_function(self, name: str) -> bool:
        return any(e.get("type") == "function" and e.get("name") == name for e in self.abi)


def find_artifact(name: str, artifacts_dir: str | Path | None = None) -> Path:
    """Resolves ``<name>.json`` under the artifacts directory.

    Hardhat nests artifacts as ``contracts/<Name>.sol/<Name>.json``; both the
    flat and the nested layout are accepted.
    """
    root = Path(artifacts_dir or settings.ARTIFACTS_DIR)
    candidates = [root / f"{name}.json", root / f"{name}.sol" / f"{name}.json"]
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    nested = sorted(root.rglob(f"{name}.json")) if root.is_dir() else []
    nested = [p for p in nested if not p.name.endswith(".dbg.json")]
    if nested:
        return nested[0]
    raise DeploymentFailed(f"artifact {name!r} not found under {root}")


def load_artifact(name: str, artifacts_dir: str | Path | None = None) -> ContractArtifact:
    path = find_artifact(name, artifacts_dir)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise DeploymentFailed(f"artifact {path} is unreadable: {e}") from e

    abi = data.get("abi")
    bytecode = data.get("bytecode")
    if isinstance(bytecode, dict):  # solc standard-json output shape
        bytecode = bytecode.get("object")
    if not isinstance(abi, list) or not abi:
        raise DeploymentFailed(f"artifact {path} has no ABI")
    if not bytecode or bytecode in ("0x", "0x0"):
        raise DeploymentFailed(f"artifact {path} has no bytecode (abstract contract or interface?)")
    if not bytecode.startswith("0x"):
        bytecode = "0x" + bytecode

    log.debug("ARTIFACT_LOADED", name=name, path=str(path))
    return ContractArtifact(name=name, abi=abi, bytecode=bytecode)


def check_constructor_args(artifact: ContractArtifact, args: Sequence[Any]) -> list:
    """Matches *args* against the constructor ABI; address arguments are checksummed."""
    inputs = artifact.constructor_inputs
    if len(inputs) != len(args):
        raise DeploymentFailed(
            f"{artifact.name} constructor takes {len(inputs)} argument(s), got {len(args)}"
        )
    checked = []
    for spec, value in zip(inputs, args):
        if spec.get("type") == "address":
            if not isinstance(value, str) or not Web3.is_address(value.lower()):
                raise DeploymentFailed(
                    f"{artifact.name} constructor argument {spec.get('name') or '?'} is not an address: {value!r}"
                )
            value = Web3.to_checksum_address(value.lower())
        checked.append(value)
    return checked
