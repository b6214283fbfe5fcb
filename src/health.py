import json

from speakeasy import __version__
from speakeasy.config import load_config
from speakeasy.logger import get_logger

logger = get_logger("health")


def lambda_handler(event, context):
    method = event.get("requestContext", {}).get("http", {}).get("method", "GET")

    # A bad environment would fail every command; surface it here instead.
    try:
        config = load_config()
    except RuntimeError as e:
        logger.error("health.misconfigured", extra={"error": str(e), "method": method})
        return {
            "statusCode": 500,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps({"status": "misconfigured", "version": __version__}),
        }

    logger.info("health.check", extra={"method": method})
    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(
            {
                "status": "ok",
                "version": __version__,
                "rate_limit_policy": config.rate_limit_policy,
                "passes_enabled": config.passes_enabled,
                "doors": [d.key for d in config.catalog.doors],
            }
        ),
    }
