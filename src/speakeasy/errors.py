"""
Failure taxonomy for the command pipeline.

Every failure carries two faces: `user_message`, the text relayed back to
Slack, and `detail`, the internal cause that only ever goes to the logs.
"""

from typing import Optional

HELP_HINT = "Try `/speakeasy help` to start."


class SpeakeasyError(Exception):
    code = "speakeasy_error"
    user_message = "An error occurred... let an admin know."
    # name of the pipeline stage that raised, set by Pipeline.run
    stage: Optional[str] = None

    def __init__(self, user_message: Optional[str] = None, detail: Optional[str] = None):
        if user_message is not None:
            self.user_message = user_message
        self.detail = detail
        super().__init__(detail or self.user_message)


class AuthUnavailable(SpeakeasyError):
    code = "auth_unavailable"
    user_message = "I can't confirm that this request is originating from Slack."


class AuthMismatch(SpeakeasyError):
    code = "auth_mismatch"
    user_message = "Cannot verify request originated from Slack... exiting."


class UserNotFound(SpeakeasyError):
    code = "user_not_found"
    user_message = "User not found in bot database; Apologies, but I can't proceed."


class FeatureDisabled(SpeakeasyError):
    code = "feature_disabled"
    user_message = (
        "Rollout of this service is currently limited, and your account is not enabled."
    )


class RateLimited(SpeakeasyError):
    code = "rate_limited"

    def __init__(self, wait_seconds: int, user_message: str):
        self.wait_seconds = wait_seconds
        super().__init__(user_message, detail=f"wait_seconds={wait_seconds}")


class PersistFailure(SpeakeasyError):
    code = "persist_failure"
    user_message = "I couldn't record your request, so I didn't run it. Please try again."


class CredentialsUnavailable(SpeakeasyError):
    code = "credentials_unavailable"
    user_message = "Valid KISI login list cannot be found. I can't proceed."


class LoginFailed(SpeakeasyError):
    code = "login_failed"
    user_message = "I couldn't log in to KISI. Please try again in a minute."


class UnknownCommand(SpeakeasyError):
    code = "unknown_command"
    user_message = f"Command not recognized. {HELP_HINT}"


class UnknownDoor(SpeakeasyError):
    code = "unknown_door"
    user_message = (
        "Sorry, but I don't recognize that door. "
        "Please run `/speakeasy help` for more info."
    )


class NoArgument(SpeakeasyError):
    code = "no_argument"
    user_message = "Which door? Usage: `/speakeasy unlock {door}`."


class NoActivePass(SpeakeasyError):
    code = "no_active_pass"
    user_message = "You don't have a pass. Run `/speakeasy checkout` to get one."


class PassExpired(SpeakeasyError):
    code = "pass_expired"
    user_message = "Your pass has expired. Run `/speakeasy checkout` to get a new one."


class CapacityExceeded(SpeakeasyError):
    code = "capacity_exceeded"
    user_message = "All passes are currently checked out. Please try again later."


class DownstreamTimeout(SpeakeasyError):
    code = "downstream_timeout"
    user_message = "A service I depend on took too long to answer. Please try again."


class DownstreamError(SpeakeasyError):
    code = "downstream_error"
    user_message = "A service I depend on returned an error... let an admin know."
