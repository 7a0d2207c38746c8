"""
Custom error classes for the panel reporting pipeline.
Structured error handling with error codes across all modules.

Hierarchy:
    ReportingError
    ├── APIError
    │   ├── APITimeoutError
    │   ├── APIRateLimitError
    │   ├── APIAuthError
    │   ├── APIUnavailableError
    │   └── CircuitOpenError
    ├── DataError
    │   ├── ConfigError
    │   ├── SchemaValidationError
    │   ├── DataFetchError
    │   └── SnapshotWriteError
    └── PipelineError
        └── PipelineStepError
"""
from typing import Any, Dict, Optional


class ReportingError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, code: str = "UNKNOWN", details: dict = None):
        self.code = code
        self.details = details or {}
        super().__init__(f"[{code}] {message}")


# --- API Errors ---

class APIError(ReportingError):
    """Base class for upstream API errors."""

    def __init__(self, message: str, code: str = "API_ERROR",
                 status_code: int = None, url: str = None, **kwargs):
        self.status_code = status_code
        self.url = url
        details = {"status_code": status_code, "url": url, **kwargs}
        super().__init__(message, code=code, details=details)


class APITimeoutError(APIError):
    """Request timed out."""

    def __init__(self, url: str, timeout: int):
        super().__init__(
            f"Request timed out after {timeout}s: {url}",
            code="API_TIMEOUT", url=url, timeout=timeout,
        )


class APIRateLimitError(APIError):
    """Rate limit exceeded."""

    def __init__(self, url: str, retry_after: int = None):
        msg = f"Rate limit exceeded: {url}"
        if retry_after:
            msg += f" (retry after {retry_after}s)"
        super().__init__(
            msg, code="API_RATE_LIMIT", status_code=429, url=url,
            retry_after=retry_after,
        )


class APIAuthError(APIError):
    """Authentication or authorization failure."""

    def __init__(self, url: str, status_code: int = 401):
        super().__init__(
            f"Authentication failed: {url}",
            code="API_AUTH_FAILED", url=url, status_code=status_code,
        )


class APIUnavailableError(APIError):
    """Transient upstream failure (5xx, 403 throttling, connection reset)."""

    def __init__(self, url: str, status_code: int = None, reason: str = ""):
        msg = f"Upstream unavailable: {url}"
        if status_code:
            msg += f" (HTTP {status_code})"
        if reason:
            msg += f" - {reason}"
        super().__init__(
            msg, code="API_UNAVAILABLE", url=url, status_code=status_code,
        )


class CircuitOpenError(APIError):
    """Circuit breaker is open, requests blocked."""

    def __init__(self, service: str, failures: int, reset_time: float):
        super().__init__(
            f"Circuit open for '{service}' after {failures} failures. "
            f"Resets in {reset_time:.0f}s.",
            code="CIRCUIT_OPEN", service=service,
        )


# --- Data Errors ---

class DataError(ReportingError):
    """Base class for data processing errors."""
    pass


class ConfigError(DataError):
    """Configuration file error."""

    def __init__(self, message: str, config_path: str = None):
        super().__init__(
            message, code="CONFIG_ERROR",
            details={"config_path": config_path},
        )


class SchemaValidationError(DataError):
    """Data doesn't match expected schema."""

    def __init__(self, message: str, field: str = None):
        super().__init__(
            message, code="SCHEMA_INVALID", details={"field": field},
        )


class DataFetchError(DataError):
    """Failed to load data from storage."""

    def __init__(self, message: str, source: str = None):
        super().__init__(
            message, code="DATA_FETCH_FAILED", details={"source": source},
        )


class SnapshotWriteError(DataError):
    """A snapshot could not be persisted. Fatal to the run."""

    def __init__(self, path: str, cause: Exception = None):
        msg = f"Could not write snapshot {path}"
        if cause:
            msg += f": {cause}"
        super().__init__(msg, code="SNAPSHOT_WRITE_FAILED", details={"path": path})


# --- Pipeline Errors ---

class PipelineError(ReportingError):
    """Pipeline orchestration error."""
    pass


class PipelineStepError(PipelineError):
    """A specific pipeline step failed."""

    def __init__(self, step_name: str, cause: Exception = None):
        msg = f"Pipeline step '{step_name}' failed"
        if cause:
            msg += f": {cause}"
        super().__init__(
            msg, code="PIPELINE_STEP_FAILED", details={"step": step_name},
        )


# --- Sentinels ---

def error_sentinel(
    error_type: str,
    error_message: str,
    error_code: Optional[Any] = None,
) -> Dict[str, Any]:
    """Build the `{error: true, ...}` marker stored in place of a failed entity."""
    sentinel: Dict[str, Any] = {
        "error": True,
        "error_type": error_type,
        "error_message": error_message,
    }
    if error_code is not None:
        sentinel["error_code"] = error_code
    return sentinel


def sentinel_from_exception(exc: Exception) -> Dict[str, Any]:
    """Translate a raised error into a sentinel dict."""
    if isinstance(exc, APIError):
        if exc.code == "INVALID_JSON":
            return error_sentinel("invalid_response", str(exc), exc.status_code)
        if exc.details.get("api_code") is not None:
            return error_sentinel("api_error", str(exc), exc.details["api_code"])
        if exc.status_code is not None:
            return error_sentinel("http_error", str(exc), exc.status_code)
    return error_sentinel("network_error", str(exc))
