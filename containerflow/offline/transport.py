# =============================================================================
# containerflow/offline/transport.py
# Authenticated HTTP Mutation Transport
# =============================================================================
"""
Performs one authenticated mutation against the ContainerFlow backend and
reports the outcome as a MutationResult. Transport failures never raise;
they come back as results without a status code.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
import logging

import requests

logger = logging.getLogger(__name__)

USER_ID_HEADER = "x-user-id"
MAX_TEXT_ERROR_LENGTH = 200


@dataclass
class MutationResult:
    """Outcome of a single mutation call."""
    success: bool
    status_code: Optional[int] = None     # None when no response arrived
    error_body: Optional[str] = None
    is_html_response: bool = False

    @property
    def is_network_error(self) -> bool:
        return self.status_code is None


# (method, route, body, auth_header) -> MutationResult
MutationTransport = Callable[[str, str, Optional[Dict[str, Any]], Optional[str]], MutationResult]


class RequestsMutationTransport:
    """
    Mutation transport built on a requests Session.

    Usage:
        transport = RequestsMutationTransport("https://containerflow-api.onrender.com")
        result = transport("PATCH", "/api/tasks/t-17", {"status": "done"}, "user-1")
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def __call__(
        self,
        method: str,
        route: str,
        body: Optional[Dict[str, Any]],
        auth_header: Optional[str],
    ) -> MutationResult:
        url = f"{self.base_url}/{route.lstrip('/')}"

        headers = {}
        if body is not None:
            headers["Content-Type"] = "application/json"
        if auth_header:
            headers[USER_ID_HEADER] = auth_header

        try:
            response = self.session.request(
                method=method,
                url=url,
                json=body,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"[API ERROR] {method} {url} - Network error: {e}")
            return MutationResult(success=False, error_body=f"Network error: {e}")

        content_type = response.headers.get("content-type", "")
        if "text/html" in content_type:
            # Wrong server answering; not a verdict on the action itself
            snippet = response.text[:100]
            logger.warning(f"[API ERROR] {method} {url} - Got HTML instead of JSON: {snippet}")
            return MutationResult(
                success=False,
                status_code=response.status_code,
                error_body=f"API misconfigured: received HTML instead of JSON. URL: {url}",
                is_html_response=True,
            )

        if response.ok:
            logger.debug(f"[API] {method} {url} -> {response.status_code}")
            return MutationResult(success=True, status_code=response.status_code)

        message = extract_error_message(response)
        logger.warning(f"[API ERROR] {method} {url} - {response.status_code}: {message}")
        return MutationResult(
            success=False,
            status_code=response.status_code,
            error_body=f"{response.status_code}: {message}",
        )


def extract_error_message(response: requests.Response) -> str:
    """Pull the backend's error text out of a failed response."""
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            for key in ("error", "message", "details"):
                if data.get(key):
                    return str(data[key])
    else:
        text = response.text
        if text and len(text) < MAX_TEXT_ERROR_LENGTH:
            return text
    return response.reason or "Request failed"
