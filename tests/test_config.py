import json

import pytest

from speakeasy.catalog import DEFAULT_CATALOG, Catalog, Door, catalog_from_json
from speakeasy.config import Config, load_config


def test_defaults():
    config = load_config({})

    assert config == Config()
    assert config.rate_limit_policy == "cooldown"
    assert config.catalog is DEFAULT_CATALOG
    assert [d.key for d in config.catalog.resolve("bw")] == ["bwo", "bwi"]


def test_overrides():
    config = load_config(
        {
            "RATE_LIMIT_POLICY": "Sliding",
            "RATE_LIMIT_MAX_ATTEMPTS": "2",
            "RATE_LIMITED_OPERATIONS": "unlock, open",
            "PASSES_ENABLED": "true",
            "PASS_CAPACITY": "12",
            "COMPOUND_UNLOCK_DELAY_SECONDS": "2.5",
            "LOCK_API_URL": "https://kisi.test/",
        }
    )

    assert config.rate_limit_policy == "sliding"
    assert config.rate_limit_max_attempts == 2
    assert config.rate_limited_operations == frozenset({"unlock", "open"})
    assert config.passes_enabled is True
    assert config.pass_capacity == 12
    assert config.compound_unlock_delay_seconds == 2.5
    assert config.lock_api_url == "https://kisi.test"


@pytest.mark.parametrize(
    "env, fragment",
    [
        ({"RATE_LIMIT_POLICY": "leaky-bucket"}, "RATE_LIMIT_POLICY"),
        ({"PASS_CAPACITY": "lots"}, "PASS_CAPACITY"),
        ({"PASS_CAPACITY": "0"}, "PASS_CAPACITY"),
        ({"LOCK_API_TIMEOUT_SECONDS": "-1"}, "LOCK_API_TIMEOUT_SECONDS"),
        ({"RATE_LIMIT_POLICY": "sliding", "RATE_LIMIT_MAX_ATTEMPTS": "9"}, "ATTEMPT_HISTORY_CAP"),
        ({"DOOR_CATALOG_JSON": "{not json"}, "DOOR_CATALOG_JSON"),
    ],
)
def test_invalid_values_raise(env, fragment):
    with pytest.raises(RuntimeError) as exc_info:
        load_config(env)
    assert fragment in str(exc_info.value)


def test_catalog_from_json():
    raw = json.dumps(
        {
            "doors": [
                {"name": "Front", "key": "f", "lock_id": 1},
                {"name": "Back", "key": "b", "lock_id": "2"},
            ],
            "compound": {"fb": ["f", "b"]},
        }
    )

    catalog = catalog_from_json(raw)

    assert catalog.doors == (Door("Front", "f", "1"), Door("Back", "b", "2"))
    assert [d.key for d in catalog.resolve("fb")] == ["f", "b"]
    assert catalog.resolve("x") == []


@pytest.mark.parametrize(
    "doors, compound",
    [
        ((Door("A", "a", "1"), Door("A2", "a", "2")), {}),
        ((Door("A", "a", "1"),), {"ab": ("a", "b")}),
        ((Door("A", "a", "1"),), {"a": ("a",)}),
    ],
)
def test_catalog_rejects_inconsistent_keys(doors, compound):
    with pytest.raises(ValueError):
        Catalog(doors=doors, compound=compound)


@pytest.mark.parametrize(
    "name",
    [
        "SETTINGS_TABLE",
        "USERS_TABLE",
        "LOCK_API_TIMEOUT_SECONDS",
        "RATE_LIMIT_POLICY",
        "RATE_LIMITED_OPERATIONS",
        "ATTEMPT_HISTORY_CAP",
        "PASS_CAPACITY",
        "COMPOUND_UNLOCK_DELAY_SECONDS",
        "DOOR_CATALOG_JSON",
        "WORKER_FUNCTION_NAME",
    ],
)
def test_environment_variables_are_documented(name):
    assert name in load_config.__doc__
