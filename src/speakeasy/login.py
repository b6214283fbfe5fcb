import random
from typing import Any, Dict, List, Optional

from speakeasy.errors import CredentialsUnavailable, LoginFailed, SpeakeasyError
from speakeasy.lock_api import LockApiClient
from speakeasy.logger import get_logger
from speakeasy.state import PipelineState
from speakeasy.store import StoreClient

logger = get_logger("login")


def _valid_logins(value: Any) -> List[Dict[str, str]]:
    if not isinstance(value, list):
        return []
    return [
        c
        for c in value
        if isinstance(c, dict) and c.get("username") and c.get("password")
    ]


class LoginStage:
    """
    Picks one KISI login from the shared pool and signs in with it.

    Rotating across several logins keeps any single account from being
    overused. The resulting headers live only as long as this request.
    """

    name = "login"

    def __init__(
        self,
        store: StoreClient,
        lock_api: LockApiClient,
        settings_table: str,
        logins_key: str,
        rng: Optional[random.Random] = None,
    ):
        self._store = store
        self._lock_api = lock_api
        self._settings_table = settings_table
        self._logins_key = logins_key
        self._rng = rng or random.Random()

    def __call__(self, state: PipelineState) -> PipelineState:
        if not state.command.needs_lock_api:
            return state

        item = self._store.get(self._settings_table, self._logins_key)
        pool = _valid_logins(item.get("value") if item else None)
        if not pool:
            raise CredentialsUnavailable(detail=f"settings item '{self._logins_key}' missing or empty")

        credential = self._rng.choice(pool)
        try:
            headers = self._lock_api.sign_in(credential["username"], credential["password"])
        except SpeakeasyError as e:
            raise LoginFailed(
                detail=f"sign_in as {credential['username']} failed: {e.detail or e}"
            ) from e

        logger.info("login.signed_in", extra={"username": credential["username"]})
        return state.evolve(session_headers=headers)
