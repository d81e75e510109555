"""Shared HTTP helpers used by the remote resolvers.

Encapsulates common request/timeout error handling so resolver modules avoid
duplicating try/except blocks. Connection problems and timeouts become
TransportError; status handling is left to the caller except for the
``get_text`` convenience which maps 4xx to "absent".
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from constants import Constants
from common.errors import TransportError
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)


def _headers(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    merged = {"User-Agent": Constants.USER_AGENT}
    if headers:
        merged.update(headers)
    return merged


def _request(method: str, url: str, *, context: str, timeout: Optional[float],
             headers: Optional[Dict[str, str]], **kwargs: Any) -> requests.Response:
    safe_target = safe_url(url)
    effective_timeout = timeout if timeout is not None else Constants.REQUEST_TIMEOUT
    with Timer() as t:
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP request",
                extra=extra_context(
                    event="http_request",
                    component="http_client",
                    action=method,
                    target=safe_target,
                    context=context
                )
            )
        try:
            res = requests.request(method, url, timeout=effective_timeout,
                                   headers=_headers(headers), **kwargs)
        except requests.Timeout as exc:
            logger.warning(
                "%s request timed out after %s seconds: %s",
                context,
                effective_timeout,
                safe_target,
            )
            raise TransportError(f"{context}: timeout fetching {safe_target}", location=url) from exc
        except requests.RequestException as exc:  # includes ConnectionError
            logger.warning("%s connection error: %s", context, exc)
            raise TransportError(f"{context}: cannot reach {safe_target}: {exc}", location=url) from exc
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action=method,
                    outcome="success" if res.status_code < 400 else "handled_non_2xx",
                    status_code=res.status_code,
                    duration_ms=t.duration_ms(),
                    target=safe_target,
                    context=context
                )
            )
        return res


def safe_get(url: str, *, context: str, timeout: Optional[float] = None,
             headers: Optional[Dict[str, str]] = None, **kwargs: Any) -> requests.Response:
    """Perform a GET request with consistent error handling and DEBUG traces."""
    return _request("GET", url, context=context, timeout=timeout, headers=headers, **kwargs)


def safe_head(url: str, *, context: str, timeout: Optional[float] = None,
              headers: Optional[Dict[str, str]] = None, **kwargs: Any) -> requests.Response:
    """Perform a HEAD request following redirects."""
    kwargs.setdefault("allow_redirects", True)
    return _request("HEAD", url, context=context, timeout=timeout, headers=headers, **kwargs)


def is_missing_status(status_code: int) -> bool:
    """4xx answers mean the resource is not there; 5xx is a transport problem."""
    return 400 <= status_code < 500


def get_text(url: str, *, context: str, timeout: Optional[float] = None) -> Optional[str]:
    """GET ``url`` and return its body, or None when the server says it is absent.

    Raises:
        TransportError: connection failure, timeout or a 5xx answer.
    """
    res = safe_get(url, context=context, timeout=timeout)
    if res.status_code == 200:
        return res.text
    if is_missing_status(res.status_code):
        return None
    raise TransportError(f"{context}: HTTP {res.status_code} for {safe_url(url)}", location=url)


def get_bytes(url: str, *, context: str, timeout: Optional[float] = None) -> Optional[bytes]:
    """Like ``get_text`` but returns the raw body, leaving decoding to the parser."""
    res = safe_get(url, context=context, timeout=timeout)
    if res.status_code == 200:
        return res.content
    if is_missing_status(res.status_code):
        return None
    raise TransportError(f"{context}: HTTP {res.status_code} for {safe_url(url)}", location=url)
