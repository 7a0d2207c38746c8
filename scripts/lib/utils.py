"""
Utility functions for the panel reporting pipeline.
Atomic file writes, JSON reads, retry logic and the JSON HTTP helper used by
the fetch scripts.

Usage:
    from scripts.lib.utils import atomic_write_json, atomic_write_text, read_json, request_json
"""
import json
import os
import time
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from scripts.lib.circuit_breaker import circuit_breaker_request
from scripts.lib.config import HTTP_MAX_RETRIES, HTTP_TIMEOUT
from scripts.lib.errors import (
    APIAuthError,
    APIError,
    APIRateLimitError,
    APITimeoutError,
    APIUnavailableError,
    DataFetchError,
    SnapshotWriteError,
)
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

RETRYABLE_STATUS = {403, 500, 502, 503, 504}


def atomic_write_json(data: Any, file_path: str | Path, indent: int = 2) -> Path:
    """
    Write JSON data to file atomically using temp file + rename.
    Readers never observe a half-written file.

    Raises:
        SnapshotWriteError: If the file could not be written.
    """
    file_path = Path(file_path)
    temp_path = file_path.with_suffix(file_path.suffix + ".tmp")

    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=indent, default=str)

        os.replace(temp_path, file_path)
        logger.debug("Atomically wrote JSON to %s", file_path)
        return file_path

    except (OSError, TypeError, ValueError) as e:
        logger.error("Failed to write JSON to %s: %s", file_path, e)
        if temp_path.exists():
            try:
                temp_path.unlink()
            except OSError:
                logger.warning("Could not remove temp file %s", temp_path)
        raise SnapshotWriteError(str(file_path), e) from e


def atomic_write_text(text: str, file_path: str | Path) -> Path:
    """Write a text document atomically (same temp file + rename as JSON)."""
    file_path = Path(file_path)
    temp_path = file_path.with_suffix(file_path.suffix + ".tmp")

    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path.write_text(text if text.endswith("\n") else text + "\n", encoding="utf-8")
        os.replace(temp_path, file_path)
        logger.debug("Atomically wrote text to %s", file_path)
        return file_path

    except OSError as e:
        logger.error("Failed to write %s: %s", file_path, e)
        if temp_path.exists():
            try:
                temp_path.unlink()
            except OSError:
                logger.warning("Could not remove temp file %s", temp_path)
        raise SnapshotWriteError(str(file_path), e) from e


def read_json(file_path: str | Path, default: Any = None) -> Any:
    """
    Read a JSON file. Returns *default* when the file does not exist.

    Raises:
        DataFetchError: If the file exists but is not valid JSON.
    """
    file_path = Path(file_path)
    if not file_path.exists():
        return default
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise DataFetchError(f"Unreadable JSON in {file_path}: {e}", source=str(file_path)) from e


def retry_on_exception(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple = (Exception,),
):
    """
    Decorator that retries a function on specified exceptions.

    Args:
        max_attempts: Maximum number of attempts.
        delay: Initial delay between retries in seconds.
        backoff: Multiplier for delay after each retry.
        exceptions: Tuple of exception types to catch.
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            current_delay = delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        logger.error(
                            "%s failed after %d attempts: %s",
                            func.__name__, max_attempts, e,
                        )
                        raise
                    logger.warning(
                        "%s failed (attempt %d/%d): %s. Retrying in %.1fs...",
                        func.__name__, attempt, max_attempts, e, current_delay,
                    )
                    time.sleep(current_delay)
                    current_delay *= backoff
        return wrapper
    return decorator


def request_json(
    service: str,
    url: str,
    params: Optional[Dict] = None,
    headers: Optional[Dict] = None,
    timeout: int = HTTP_TIMEOUT,
    max_retries: int = HTTP_MAX_RETRIES,
    retry_delay: float = 1.0,
) -> Any:
    """
    GET a JSON document from an upstream API.

    Throttling and 5xx responses are retried with exponential backoff.
    Anything else that is not a 2xx, a body that is not a JSON object, or a
    body carrying an `error` object raises an APIError subclass.
    """
    @retry_on_exception(
        max_attempts=max_retries,
        delay=retry_delay,
        exceptions=(APIUnavailableError, APIRateLimitError, APITimeoutError),
    )
    def _fetch():
        response = circuit_breaker_request(
            service, url, timeout=timeout, params=params, headers=headers,
        )
        status = response.status_code
        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise APIRateLimitError(url, int(retry_after) if retry_after and retry_after.isdigit() else None)
        if status in RETRYABLE_STATUS:
            raise APIUnavailableError(url, status_code=status, reason=response.reason or "")
        if status == 401:
            raise APIAuthError(url, status_code=status)
        if not response.ok:
            raise APIError(
                f"HTTP {status}: {response.reason}", status_code=status, url=url,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise APIError(
                f"Invalid JSON body: {e}", code="INVALID_JSON", status_code=status, url=url,
            ) from e
        if not isinstance(data, dict):
            raise APIError(
                f"Expected a JSON object, got {type(data).__name__}",
                code="INVALID_JSON", status_code=status, url=url,
            )
        if isinstance(data.get("error"), dict):
            err = data["error"]
            raise APIError(
                f"API Error: {err.get('message', 'unknown')}",
                status_code=status, url=url, api_code=err.get("code"),
            )
        return data

    return _fetch()
