# /forkswap/core/decorators.py
# Retry policy for probing the fork node before a scenario starts.
# Scenario steps themselves are never retried.
import logging

from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from forkswap.core.config import settings
from forkswap.core.errors import EnvironmentUnavailable
from forkswap.core.logger import get_logger

log = get_logger(__name__)

retriable_node_probe = retry(
    stop=stop_after_attempt(settings.NODE_CONNECT_ATTEMPTS),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    retry=retry_if_exception_type(EnvironmentUnavailable),
    before_sleep=before_sleep_log(log, logging.WARNING),
    reraise=True,  # surface the last EnvironmentUnavailable once attempts are exhausted
)
