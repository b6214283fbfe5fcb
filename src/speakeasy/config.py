import os
from dataclasses import dataclass
from typing import FrozenSet, Mapping, Optional

from speakeasy.catalog import DEFAULT_CATALOG, Catalog, catalog_from_json
from speakeasy.logger import get_logger

logger = get_logger("config")

RATE_LIMIT_POLICIES = ("cooldown", "sliding")


@dataclass(frozen=True)
class Config:
    region: str = "us-east-1"
    settings_table: str = "SlackSpeakeasyData"
    users_table: str = "TFoSlackUsers"
    auth_token_key: str = "slack_auth_token"
    logins_key: str = "logins"

    lock_api_url: str = "https://api.getkisi.com"
    lock_api_timeout: float = 5.0
    store_timeout: float = 3.0
    relay_timeout: float = 5.0

    rate_limit_policy: str = "cooldown"
    rate_limit_window_seconds: int = 60
    rate_limit_max_attempts: int = 3
    rate_limited_operations: FrozenSet[str] = frozenset({"unlock", "open", "checkout"})
    attempt_history_cap: int = 5

    passes_enabled: bool = False
    pass_capacity: int = 8
    pass_duration_hours: int = 24

    compound_unlock_delay_seconds: float = 10.0
    catalog: Catalog = DEFAULT_CATALOG

    worker_function_name: str = "tfo_slack_speakeasy"


def _fail(msg: str) -> RuntimeError:
    logger.error(msg)
    return RuntimeError(msg)


def _int(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise _fail(f"Invalid {name}='{raw}'. Must be an integer.")
    if value < minimum:
        raise _fail(f"Invalid {name}='{raw}'. Must be at least {minimum}.")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise _fail(f"Invalid {name}='{raw}'. Must be a number of seconds.")
    if value < 0:
        raise _fail(f"Invalid {name}='{raw}'. Must not be negative.")
    return value


def _bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def load_config(environ: Optional[Mapping[str, str]] = None) -> Config:
    """
    Load configuration from environment variables.

    Raises RuntimeError with a clear message if something is invalid.
    Unset variables fall back to the Config defaults.

    Tables and keys:
      AWS_REGION                     region for the DynamoDB and Lambda clients
      SETTINGS_TABLE                 settings table, keyed by `key`
      USERS_TABLE                    users table, keyed by `id`
      AUTH_TOKEN_KEY                 settings key holding the Slack token
      LOGINS_KEY                     settings key holding the KISI logins

    Downstream calls (seconds):
      LOCK_API_URL                   KISI base URL
      LOCK_API_TIMEOUT_SECONDS       per request to KISI
      STORE_TIMEOUT_SECONDS          DynamoDB connect/read timeout
      RELAY_TIMEOUT_SECONDS          posting to Slack's response_url

    Rate limiting:
      RATE_LIMIT_POLICY              "cooldown" or "sliding"
      RATE_LIMIT_WINDOW_SECONDS      cooldown length / sliding window
      RATE_LIMIT_MAX_ATTEMPTS        sliding: attempts allowed per window
      RATE_LIMITED_OPERATIONS        sliding: comma-separated allow-list
      ATTEMPT_HISTORY_CAP            attempts kept on the user record

    Passes and doors:
      PASSES_ENABLED                 turns on checkout and the unlock gate
      PASS_CAPACITY                  active passes allowed at once
      PASS_DURATION_HOURS            how long a checked-out pass lasts
      COMPOUND_UNLOCK_DELAY_SECONDS  pause between the doors of a pair
      DOOR_CATALOG_JSON              replaces the built-in door catalog

    WORKER_FUNCTION_NAME is the Lambda the proxy hands commands to.
    LOG_LEVEL is read by logger.py.
    """
    env = os.environ if environ is None else environ
    defaults = Config()

    policy = env.get("RATE_LIMIT_POLICY", defaults.rate_limit_policy).strip().lower()
    if policy not in RATE_LIMIT_POLICIES:
        raise _fail(
            f"Invalid RATE_LIMIT_POLICY='{policy}'. "
            f"Must be one of: {', '.join(RATE_LIMIT_POLICIES)}."
        )

    operations = defaults.rate_limited_operations
    if env.get("RATE_LIMITED_OPERATIONS"):
        operations = frozenset(
            op.strip() for op in env["RATE_LIMITED_OPERATIONS"].split(",") if op.strip()
        )

    catalog = defaults.catalog
    if env.get("DOOR_CATALOG_JSON"):
        try:
            catalog = catalog_from_json(env["DOOR_CATALOG_JSON"])
        except ValueError as e:
            raise _fail(f"Invalid DOOR_CATALOG_JSON: {e}")

    max_attempts = _int(
        env, "RATE_LIMIT_MAX_ATTEMPTS", defaults.rate_limit_max_attempts, minimum=1
    )
    history_cap = _int(env, "ATTEMPT_HISTORY_CAP", defaults.attempt_history_cap, minimum=1)
    if policy == "sliding" and max_attempts > history_cap:
        raise _fail(
            f"Invalid RATE_LIMIT_MAX_ATTEMPTS={max_attempts}. "
            f"Must not exceed ATTEMPT_HISTORY_CAP={history_cap}."
        )

    return Config(
        region=env.get("AWS_REGION", defaults.region),
        settings_table=env.get("SETTINGS_TABLE", defaults.settings_table),
        users_table=env.get("USERS_TABLE", defaults.users_table),
        auth_token_key=env.get("AUTH_TOKEN_KEY", defaults.auth_token_key),
        logins_key=env.get("LOGINS_KEY", defaults.logins_key),
        lock_api_url=env.get("LOCK_API_URL", defaults.lock_api_url).rstrip("/"),
        lock_api_timeout=_float(env, "LOCK_API_TIMEOUT_SECONDS", defaults.lock_api_timeout),
        store_timeout=_float(env, "STORE_TIMEOUT_SECONDS", defaults.store_timeout),
        relay_timeout=_float(env, "RELAY_TIMEOUT_SECONDS", defaults.relay_timeout),
        rate_limit_policy=policy,
        rate_limit_window_seconds=_int(
            env, "RATE_LIMIT_WINDOW_SECONDS", defaults.rate_limit_window_seconds, minimum=1
        ),
        rate_limit_max_attempts=max_attempts,
        rate_limited_operations=operations,
        attempt_history_cap=history_cap,
        passes_enabled=_bool(env, "PASSES_ENABLED", defaults.passes_enabled),
        pass_capacity=_int(env, "PASS_CAPACITY", defaults.pass_capacity, minimum=1),
        pass_duration_hours=_int(
            env, "PASS_DURATION_HOURS", defaults.pass_duration_hours, minimum=1
        ),
        compound_unlock_delay_seconds=_float(
            env, "COMPOUND_UNLOCK_DELAY_SECONDS", defaults.compound_unlock_delay_seconds
        ),
        catalog=catalog,
        worker_function_name=env.get("WORKER_FUNCTION_NAME", defaults.worker_function_name),
    )
