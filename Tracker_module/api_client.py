"""
HTTP client for the tracking server.
"""
import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5


class TrackingApiError(Exception):
    """Non-2xx response or transport failure talking to the tracking server."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TrackingApiClient:
    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: Optional[str] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        if user_agent:
            self.session.headers["User-Agent"] = user_agent

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def post(self, path: str, payload: Dict[str, Any], credential: Optional[str] = None) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if credential:
            headers["Authorization"] = f"Bearer {credential}"
        try:
            response = self.session.post(self.url(path), json=payload, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise TrackingApiError(f"POST {path} failed: {e}") from e

        if not response.ok:
            raise TrackingApiError(f"POST {path} returned {response.status_code}", response.status_code)
        try:
            return response.json()
        except ValueError:
            return {}

    def request_otp(self, email: str) -> Dict[str, Any]:
        return self.post("/auth/request-otp", {"email": email})

    def verify_otp(self, email: str, otp: str) -> Dict[str, Any]:
        """Returns the login response: token and user."""
        return self.post("/auth/verify-otp", {"email": email, "otp": otp})

    def logout(self, credential: str) -> Dict[str, Any]:
        return self.post("/auth/logout", {}, credential)

    def start_page_view(
        self,
        credential: str,
        session_token: str,
        page_path: str,
        page_title: str,
        referrer: Optional[str] = None
    ) -> Dict[str, Any]:
        return self.post(
            "/page-tracking/start",
            {
                "sessionToken": session_token,
                "pagePath": page_path,
                "pageTitle": page_title,
                "referrer": referrer,
            },
            credential
        )

    def update_page_view(
        self,
        credential: str,
        page_view_id: int,
        interactions: Optional[int] = None,
        action: Optional[str] = None
    ) -> Dict[str, Any]:
        return self.post(
            "/page-tracking/update",
            {"pageViewId": page_view_id, "interactions": interactions, "action": action},
            credential
        )
