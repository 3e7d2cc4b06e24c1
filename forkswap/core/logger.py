# /forkswap/core/logger.py
import logging

import sentry_sdk
import structlog
from prometheus_client import Counter
from structlog.contextvars import bind_contextvars, unbind_contextvars

from forkswap.core.config import settings

# --- Prometheus Metrics ---
STEPS_EXECUTED = Counter("forkswap_steps_executed_total", "Harness steps completed", ["step"])
SCENARIOS_PASSED = Counter("forkswap_scenarios_passed_total", "Scenarios that reached Verified")
SCENARIOS_FAILED = Counter("forkswap_scenarios_failed_total", "Scenarios that ended in Failed", ["kind"])


def configure_logging():
    if settings.SENTRY_DSN:
        sentry_sdk.init(dsn=settings.SENTRY_DSN.get_secret_value(), traces_sample_rate=1.0)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(settings.LOG_LEVEL)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str):
    return structlog.get_logger(name)


def bind_scenario(name: str, network: str | None = None):
    bind_contextvars(scenario=name, network=network)


def unbind_scenario():
    unbind_contextvars("scenario", "network")


configure_logging()
log = get_logger("forkswap.system")
