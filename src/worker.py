import base64
from typing import Any, Dict, Optional
from urllib.parse import parse_qs

from speakeasy.commands import is_help
from speakeasy.config import Config, load_config
from speakeasy.lock_api import LockApiClient
from speakeasy.logger import get_logger
from speakeasy.pipeline import Pipeline, build_pipeline, help_message
from speakeasy.relay import BufferedRelay, CallbackRelay
from speakeasy.state import CommandRequest
from speakeasy.store import StoreClient, build_resource

logger = get_logger("worker")

GENERIC_ERROR = "An error occurred... let an admin know."

# Built once per container and reused across invocations
_config: Optional[Config] = None
_pipeline: Optional[Pipeline] = None


def _get_config() -> Config:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def _get_pipeline() -> Pipeline:
    global _pipeline
    if _pipeline is None:
        config = _get_config()
        store = StoreClient(
            build_resource(config.region, config.store_timeout),
            key_names={config.settings_table: "key", config.users_table: "id"},
        )
        lock_api = LockApiClient(config.lock_api_url, config.lock_api_timeout)
        _pipeline = build_pipeline(config, store, lock_api)
        logger.info(
            "worker.pipeline_built",
            extra={
                "rate_limit_policy": config.rate_limit_policy,
                "passes_enabled": config.passes_enabled,
                "doors": len(config.catalog.doors),
            },
        )
    return _pipeline


def _relay_timeout() -> float:
    return _config.relay_timeout if _config else Config().relay_timeout


def _parse_body(event: dict) -> Dict[str, str]:
    """
    Extract the slash-command fields from the Lambda event.

    - From the proxy: event["body"] is already a dict of fields.
    - From API Gateway directly: event["body"] is the form-encoded string.
    """
    body = event.get("body")
    if isinstance(body, dict):
        return {k: str(v) for k, v in body.items() if v is not None}

    raw = body or ""
    if event.get("isBase64Encoded") and isinstance(raw, str):
        raw = base64.b64decode(raw).decode("utf-8")

    parsed = parse_qs(raw)
    # Flatten: {'text': ['unlock bwo']} → {'text': 'unlock bwo'}
    return {k: v[0] for k, v in parsed.items() if v}


def _to_request(fields: Dict[str, str]) -> CommandRequest:
    return CommandRequest(
        text=fields.get("text", ""),
        user_id=fields.get("user_id", ""),
        token=fields.get("token", ""),
        response_url=fields.get("response_url") or None,
    )


def _response(relay) -> dict:
    if isinstance(relay, BufferedRelay):
        return {
            "statusCode": 200,
            "headers": {"Content-Type": "text/plain"},
            "body": relay.body,
        }
    return {"statusCode": 200, "headers": {}, "body": ""}


def lambda_handler(event, context):
    fields = _parse_body(event)
    request = _to_request(fields)
    help_requested = is_help(request.text)

    logger.info(
        "worker.lambda_start",
        extra={
            "request_id": getattr(context, "aws_request_id", None),
            "user_id": request.user_id,
            "text": request.text,
            "mode": "callback" if request.response_url else "sync",
        },
    )

    config = pipeline = None
    try:
        config = _get_config()
        # help is answered from config alone, so it survives a broken store
        if not help_requested:
            pipeline = _get_pipeline()
    except Exception as e:
        # Misconfiguration: still answer the user, the detail is in the logs
        logger.exception("worker.setup_error", extra={"error": str(e)})

    if request.response_url:
        relay: Any = CallbackRelay(request.response_url, _relay_timeout())
    else:
        relay = BufferedRelay()

    if help_requested and config is not None:
        relay.send(help_message(config))
        return _response(relay)

    if pipeline is None:
        relay.send(GENERIC_ERROR)
        return _response(relay)

    try:
        pipeline.handle(request, relay)
    except Exception as e:
        logger.exception(
            "worker.unhandled_error",
            extra={"error": str(e), "user_id": request.user_id, "text": request.text},
        )
        relay.send(GENERIC_ERROR)

    return _response(relay)
