"""HTTP helpers shared by the PostgREST read and write paths."""

import logging
from typing import Any, Dict, Optional

import requests

from core.errors import (
    AuthError,
    MalformedResponseError,
    QueryError,
    RateLimitError,
    RejectedError,
    RequestTimeoutError,
    StoreError,
)

logger = logging.getLogger(__name__)


def store_headers(api_key: Optional[str]) -> Dict[str, str]:
    """Headers for a Supabase/PostgREST table endpoint."""
    headers = {
        'Accept': 'application/json',
        'Content-Type': 'application/json',
    }
    if api_key:
        headers['apikey'] = api_key
        headers['Authorization'] = f"Bearer {api_key}"
    return headers


def _retry_after(response: requests.Response) -> Optional[float]:
    value = response.headers.get('Retry-After')
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def _describe(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return (response.text or '')[:200]
    if isinstance(body, dict):
        return str(body.get('message') or body.get('error') or body)[:200]
    return str(body)[:200]


def error_for_response(response: requests.Response) -> Optional[StoreError]:
    """
    Map an HTTP response onto the store error taxonomy.

    Returns:
        None for 2xx, otherwise the matching StoreError instance
    """
    status = response.status_code
    if 200 <= status < 300:
        return None

    detail = _describe(response)
    if status in (401, 403):
        return AuthError(f"store rejected credentials ({status}): {detail}", status)
    if status == 429:
        return RateLimitError(f"store rate limit hit: {detail}", status, _retry_after(response))
    if status >= 500:
        return QueryError(f"store unavailable ({status}): {detail}", status)
    return RejectedError(f"store rejected request ({status}): {detail}", status)


def send(
    session: requests.Session,
    method: str,
    url: str,
    timeout: float,
    **kwargs: Any
) -> requests.Response:
    """
    Perform one request and raise a typed StoreError for any failure.

    Raises:
        StoreError: Non-2xx status, timeout or network failure
    """
    try:
        response = session.request(method, url, timeout=timeout, **kwargs)
    except requests.exceptions.Timeout as e:
        raise RequestTimeoutError(f"{method} {url} timed out after {timeout}s: {e}")
    except requests.exceptions.RequestException as e:
        raise QueryError(f"{method} {url} failed: {e}")

    error = error_for_response(response)
    if error is not None:
        logger.debug("%s %s -> %s", method, url, response.status_code)
        raise error
    return response


def json_list(response: requests.Response) -> list:
    """Decode a response body that must be a JSON array."""
    try:
        payload = response.json()
    except ValueError:
        raise MalformedResponseError("store returned a non-JSON body", response.status_code)
    if not isinstance(payload, list):
        raise MalformedResponseError(
            f"store returned {type(payload).__name__}, expected a list", response.status_code
        )
    return payload
