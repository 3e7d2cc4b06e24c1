# /forkswap/core/config.py
from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Remote chain-state source (Infura project key)
    INFURA_API_KEY: SecretStr | None = None
    REMOTE_URL_TEMPLATE: str = "https://{network}.infura.io/v3/{api_key}"

    # Local node that materializes the fork
    FORK_NODE_URL: str = "http://127.0.0.1:8545"
    FORK_NODE_FLAVOR: Literal["anvil", "hardhat"] = "anvil"
    NODE_CONNECT_ATTEMPTS: int = 5

    # Contract under test
    ARTIFACTS_DIR: str = "artifacts/contracts"
    SWAPPER_ARTIFACT: str = "Swapper"
    SWAP_ROUTER_ADDRESS: str = "0xE592427A0AEce92De3Edee1F18E0157C05861564"

    # Upper bound for every awaited step (fork reset, receipts, reads)
    STEP_TIMEOUT_SECONDS: float = 120.0

    # Operational Settings
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: SecretStr | None = None

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    def remote_endpoint(self, network: str) -> str:
        """Builds the archive endpoint for *network*.

        Fails fast with ``ConfigurationError`` when no API key is configured,
        rather than handing the node an endpoint with an empty credential.
        """
        from forkswap.core.config_validator import require_api_key

        api_key = require_api_key(self)
        return self.REMOTE_URL_TEMPLATE.format(network=network, api_key=api_key)


settings = Settings()
