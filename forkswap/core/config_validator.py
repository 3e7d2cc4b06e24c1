# /forkswap/core/config_validator.py
# Run before any scenario to validate configs and secrets.
from forkswap.core.config import Settings, settings as default_settings
from forkswap.core.errors import ConfigurationError
from forkswap.core.logger import log


def require_api_key(cfg: Settings) -> str:
    key = cfg.INFURA_API_KEY.get_secret_value() if cfg.INFURA_API_KEY else ""
    if not key.strip():
        log.critical("MISSING_REMOTE_API_KEY", variable="INFURA_API_KEY")
        raise ConfigurationError("INFURA_API_KEY is not set; cannot build a remote fork endpoint.")
    return key.strip()


def validate(cfg: Settings | None = None):
    cfg = cfg or default_settings
    log.info("--- CONFIG VALIDATION START ---")
    errors = []

    if not cfg.INFURA_API_KEY or not cfg.INFURA_API_KEY.get_secret_value().strip():
        errors.append("Missing required configuration: INFURA_API_KEY")
    if not cfg.FORK_NODE_URL:
        errors.append("Missing required configuration: FORK_NODE_URL")
    if cfg.STEP_TIMEOUT_SECONDS <= 0:
        errors.append("STEP_TIMEOUT_SECONDS must be positive")
    if cfg.NODE_CONNECT_ATTEMPTS < 1:
        errors.append("NODE_CONNECT_ATTEMPTS must be at least 1")

    if errors:
        for error in errors:
            log.critical(error)
        raise ConfigurationError("Harness configuration is incomplete. Halting.")

    log.info("--- CONFIG VALIDATION PASSED ---")


if __name__ == "__main__":
    validate()
