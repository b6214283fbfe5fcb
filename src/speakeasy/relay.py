from typing import List, Optional

import requests

from speakeasy.logger import get_logger

logger = get_logger("relay")


class CallbackRelay:
    """
    Posts each reply to the Slack `response_url` as it becomes available.

    Slack accepts several sequential messages on one response_url, which is
    what lets a paired unlock report each door separately.
    """

    def __init__(self, response_url: str, timeout: float, session: Optional[requests.Session] = None):
        self._url = response_url
        self._timeout = timeout
        self._session = session or requests.Session()
        self.sent = 0

    def send(self, text: str) -> None:
        try:
            resp = self._session.post(self._url, json={"text": text}, timeout=self._timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            # Nobody left to tell; the failure is only visible in the logs.
            logger.error("relay.post_error", extra={"error": str(e), "text_preview": text[:100]})
            return
        self.sent += 1
        logger.info("relay.posted", extra={"status_code": resp.status_code})


class BufferedRelay:
    """
    Collects replies so a synchronous invocation can return them in its body.
    """

    def __init__(self):
        self.messages: List[str] = []

    def send(self, text: str) -> None:
        self.messages.append(text)

    @property
    def body(self) -> str:
        return "\n\n".join(self.messages)
