"""
Front door for the Slack slash command.

Slack requires an answer to its webhook within 3 seconds; unlocking can take
longer than that. This handler always answers fast and hands the command to
the worker with an async invoke:

  slack -S-> apig -S-> proxy -A-* worker
    | <-----S-| <-------S-|          |
    | <----------------------------S-|  (via response_url)
"""

import base64
import json
import os
from typing import Dict, Optional
from urllib.parse import parse_qs

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from speakeasy.commands import is_help
from speakeasy.config import Config, load_config
from speakeasy.logger import get_logger
from speakeasy.pipeline import help_message

logger = get_logger("proxy")

SLASH_COMMAND = "/speakeasy"

# Reuse AWS clients across invocations
lambda_client = boto3.client("lambda", region_name=os.getenv("AWS_REGION", "us-east-1"))
_config: Optional[Config] = None


def _parse_form(event: dict) -> Dict[str, str]:
    raw = event.get("body") or ""
    if event.get("isBase64Encoded"):
        raw = base64.b64decode(raw).decode("utf-8")
    parsed = parse_qs(raw)
    return {k: v[0] for k, v in parsed.items() if v}


def _respond(status_code: int, body: str = "") -> dict:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "text/plain"} if body else {},
        "body": body,
    }


def _get_config() -> Config:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def lambda_handler(event, context):
    body = _parse_form(event)
    command = body.get("command")

    logger.info(
        "proxy.request",
        extra={
            "request_id": getattr(context, "aws_request_id", None),
            "command": command,
            "user_id": body.get("user_id"),
        },
    )

    if command != SLASH_COMMAND:
        logger.warning("proxy.unknown_command", extra={"command": command})
        return _respond(200)

    try:
        config = _get_config()
    except RuntimeError:
        return _respond(500, "server_misconfigured")

    # help never needs the worker, the store or KISI
    if is_help(body.get("text", "")):
        return _respond(200, help_message(config))

    function_name = config.worker_function_name
    try:
        # "Event" returns as soon as Lambda has queued the invocation.
        resp = lambda_client.invoke(
            FunctionName=function_name,
            InvocationType="Event",
            Payload=json.dumps({"body": body}).encode("utf-8"),
        )
    except (ClientError, BotoCoreError) as e:
        logger.error(
            "proxy.handoff_error",
            extra={"error": str(e), "function_name": function_name},
        )
        return _respond(500, "handoff_failure")

    logger.info(
        "proxy.handed_off",
        extra={"function_name": function_name, "status_code": resp.get("StatusCode")},
    )
    return _respond(200)
