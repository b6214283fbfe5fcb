"""
Thin client for the KISI access-control API.

Only three calls are used:
  - POST /logins/sign_in        → login secret, turned into session headers
  - POST /locks/{id}/peek       → status message for a lock
  - POST /locks/{id}/unlock     → status message for an unlock
"""

from typing import Any, Dict, Optional

import requests

from speakeasy.errors import DownstreamError, DownstreamTimeout
from speakeasy.logger import get_logger

logger = get_logger("lock_api")

BASE_HEADERS = {
    "accept": "application/json",
    "content-type": "application/json",
}


class LockApiClient:
    def __init__(self, base_url: str, timeout: float, session: Optional[requests.Session] = None):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    def sign_in(self, username: str, password: str) -> Dict[str, str]:
        """
        Exchange one login for the headers every later call must carry.
        """
        body = self._post(
            "/logins/sign_in",
            headers=BASE_HEADERS,
            json={"user": {"email": username, "password": password}},
        )
        secret = body.get("secret")
        if not secret:
            raise DownstreamError(detail="sign_in response carried no secret")
        return {**BASE_HEADERS, "x-login-secret": secret}

    def peek(self, lock_id: str, headers: Dict[str, str]) -> str:
        return self._message(self._post(f"/locks/{lock_id}/peek", headers=headers))

    def unlock(self, lock_id: str, headers: Dict[str, str]) -> str:
        return self._message(self._post(f"/locks/{lock_id}/unlock", headers=headers))

    def _post(self, path: str, headers: Dict[str, str], json: Any = None) -> Dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            resp = self._session.post(url, headers=headers, json=json, timeout=self._timeout)
        except requests.Timeout as e:
            logger.error("lock_api.timeout", extra={"path": path, "error": str(e)})
            raise DownstreamTimeout(detail=f"POST {path} timed out: {e}")
        except requests.RequestException as e:
            logger.error("lock_api.request_error", extra={"path": path, "error": str(e)})
            raise DownstreamError(detail=f"POST {path} failed: {e}")

        if not 200 <= resp.status_code < 300:
            logger.error(
                "lock_api.bad_status",
                extra={"path": path, "status_code": resp.status_code, "body": resp.text[:200]},
            )
            raise DownstreamError(detail=f"POST {path} returned {resp.status_code}")

        try:
            body = resp.json()
        except ValueError:
            logger.error("lock_api.invalid_json", extra={"path": path, "body": resp.text[:200]})
            raise DownstreamError(detail=f"POST {path} returned a non-JSON body")

        if not isinstance(body, dict):
            raise DownstreamError(detail=f"POST {path} returned {type(body).__name__}, not an object")
        return body

    @staticmethod
    def _message(body: Dict[str, Any]) -> str:
        message = body.get("message")
        if not isinstance(message, str):
            raise DownstreamError(detail="lock response carried no message")
        return message
