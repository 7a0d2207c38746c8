"""
Circuit breaker for upstream API calls.
Stops hammering an upstream (Callbell, Meta Graph) once it keeps failing,
so one broken service does not stall the whole batch.

Usage:
    from scripts.lib.circuit_breaker import circuit_breaker_request

    response = circuit_breaker_request("meta", url, params=params)
"""
import time

import requests

from scripts.lib.errors import APITimeoutError, APIUnavailableError, CircuitOpenError
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)


class CircuitBreaker:
    """
    Circuit breaker with three states: CLOSED, OPEN, HALF_OPEN.

    CLOSED: Requests pass through normally. Failures are counted.
    OPEN: Requests are blocked. After reset_timeout, moves to HALF_OPEN.
    HALF_OPEN: One test request allowed. Success closes, failure re-opens.
    """

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"

    _instances: dict = {}

    def __init__(self, service: str, failure_threshold: int = 5,
                 reset_timeout: int = 60):
        self.service = service
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.state = self.CLOSED
        self.failure_count = 0
        self.last_failure_time = 0.0

    @classmethod
    def get(cls, service: str, **kwargs) -> "CircuitBreaker":
        """Get or create the breaker for a service."""
        if service not in cls._instances:
            cls._instances[service] = cls(service, **kwargs)
        return cls._instances[service]

    @classmethod
    def reset_all(cls):
        cls._instances.clear()

    def can_execute(self) -> bool:
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            if time.time() - self.last_failure_time >= self.reset_timeout:
                self.state = self.HALF_OPEN
                logger.info(
                    "Circuit half-open for '%s', allowing test request",
                    self.service,
                )
                return True
            return False

        return True  # HALF_OPEN

    def record_success(self):
        if self.state == self.HALF_OPEN:
            logger.info("Circuit closed for '%s', service recovered", self.service)
        self.state = self.CLOSED
        self.failure_count = 0

    def record_failure(self):
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            self.state = self.OPEN
            logger.warning(
                "Circuit re-opened for '%s', test request failed", self.service,
            )
        elif self.failure_count >= self.failure_threshold:
            self.state = self.OPEN
            logger.warning(
                "Circuit opened for '%s' after %d consecutive failures "
                "(threshold: %d, reset in %ds)",
                self.service, self.failure_count,
                self.failure_threshold, self.reset_timeout,
            )

    @property
    def time_until_reset(self) -> float:
        """Seconds until the breaker resets (0 if not open)."""
        if self.state != self.OPEN:
            return 0.0
        elapsed = time.time() - self.last_failure_time
        return max(0.0, self.reset_timeout - elapsed)


def circuit_breaker_request(
    service: str,
    url: str,
    method: str = "GET",
    timeout: int = 30,
    failure_threshold: int = 5,
    reset_timeout: int = 60,
    **kwargs,
) -> requests.Response:
    """
    Make an HTTP request with circuit breaker protection.

    Non-2xx responses are returned to the caller (and counted as failures);
    transport errors are raised.

    Raises:
        CircuitOpenError: If the circuit is open.
        APITimeoutError: If the request timed out.
        APIUnavailableError: On connection or other transport errors.
    """
    breaker = CircuitBreaker.get(
        service,
        failure_threshold=failure_threshold,
        reset_timeout=reset_timeout,
    )

    if not breaker.can_execute():
        raise CircuitOpenError(
            service, breaker.failure_count, breaker.time_until_reset,
        )

    start = time.time()
    try:
        response = requests.request(method, url, timeout=timeout, **kwargs)
    except requests.exceptions.Timeout:
        breaker.record_failure()
        logger.error(
            "[%s] %s %s TIMEOUT after %.2fs", service, method, url, time.time() - start,
        )
        raise APITimeoutError(url, timeout)
    except requests.RequestException as e:
        breaker.record_failure()
        logger.error("[%s] %s %s CONNECTION_ERROR: %s", service, method, url, e)
        raise APIUnavailableError(url, reason=str(e))

    duration = time.time() - start
    if response.ok:
        breaker.record_success()
        logger.debug(
            "[%s] %s %s %d in %.2fs", service, method, url, response.status_code, duration,
        )
    else:
        breaker.record_failure()
        logger.warning(
            "[%s] %s %s %d in %.2fs [circuit: %s]",
            service, method, url, response.status_code, duration, breaker.state,
        )
    return response
