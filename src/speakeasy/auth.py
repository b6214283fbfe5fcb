import hmac

from speakeasy.errors import AuthMismatch, AuthUnavailable, FeatureDisabled, UserNotFound
from speakeasy.logger import get_logger
from speakeasy.models import UserRecord
from speakeasy.state import PipelineState
from speakeasy.store import StoreClient

logger = get_logger("auth")


class AuthorizeStage:
    """
    Verifies the Slack verification token, then resolves the calling user.

    Two store reads, no writes.
    """

    name = "authorize"

    def __init__(self, store: StoreClient, settings_table: str, users_table: str, token_key: str):
        self._store = store
        self._settings_table = settings_table
        self._users_table = users_table
        self._token_key = token_key

    def __call__(self, state: PipelineState) -> PipelineState:
        item = self._store.get(self._settings_table, self._token_key)
        canonical = item.get("value") if item else None
        if not isinstance(canonical, str) or not canonical:
            raise AuthUnavailable(detail=f"settings item '{self._token_key}' missing or empty")

        if not hmac.compare_digest(canonical.encode(), (state.request.token or "").encode()):
            raise AuthMismatch(detail="request token does not match canonical token")

        user_item = self._store.get(self._users_table, state.request.user_id)
        if user_item is None:
            raise UserNotFound(detail=f"no user item for id={state.request.user_id}")

        user = UserRecord.from_item(user_item)
        if not user.enabled:
            raise FeatureDisabled(detail=f"user {user.user_id} is not enabled")

        logger.debug("auth.ok", extra={"user_id": user.user_id})
        return state.evolve(user=user)
