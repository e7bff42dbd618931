"""adapters.http_errors

Helpers shared by the adapters for turning a non-2xx answer into text.
"""

from __future__ import annotations

from collections.abc import Mapping
from http import HTTPStatus

# Client errors that are still worth another attempt
_RETRYABLE_CLIENT_ERRORS = frozenset({HTTPStatus.REQUEST_TIMEOUT, HTTPStatus.TOO_MANY_REQUESTS})


def is_retryable_status(status_code: int) -> bool:
    """4xx answers are final (except 408 / 429); everything else may be transient."""
    if 400 <= status_code < 500:  # noqa: PLR2004
        return status_code in _RETRYABLE_CLIENT_ERRORS
    return True


def error_message(body: object, status_code: int) -> str:
    """Pull a message out of ``{"error": "..."}`` / ``{"error": {"message": "..."}}`` bodies."""
    if isinstance(body, Mapping):
        error = body.get('error', body)
        if isinstance(error, Mapping):
            error = error.get('message')
        if isinstance(error, str) and error:
            return error
    elif isinstance(body, str) and body:
        return body
    return f'HTTP error {status_code}'
