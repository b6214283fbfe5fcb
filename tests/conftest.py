"""Shared stubs and fixtures for the speakeasy tests."""

import copy
import threading
from datetime import datetime, timedelta, timezone

import pytest

from speakeasy.catalog import Catalog, Door
from speakeasy.config import Config
from speakeasy.errors import DownstreamError, DownstreamTimeout

SETTINGS = "settings"
USERS = "users"
TOKEN = "slack-verification-token"
NOW = datetime(2026, 10, 16, 12, 0, 0, tzinfo=timezone.utc)

TEST_CATALOG = Catalog(
    doors=(
        Door("West Outer", "wo", "101"),
        Door("West Inner", "wi", "102"),
        Door("Parking", "p", "103"),
    ),
    compound={"w": ("wo", "wi")},
)


class FakeStore:
    """In-memory stand-in for StoreClient that records every call."""

    def __init__(self):
        self.tables = {SETTINGS: {}, USERS: {}}
        self.key_names = {SETTINGS: "key", USERS: "id"}
        self.calls = []
        self.fail = {}
        self.before_scan = None
        self._lock = threading.Lock()

    def put(self, table, item):
        self.tables[table][item[self.key_names[table]]] = item

    def _maybe_fail(self, op, table):
        exc = self.fail.get((op, table))
        if exc is not None:
            raise exc

    def get(self, table, key):
        self.calls.append(("get", table, key))
        self._maybe_fail("get", table)
        item = self.tables[table].get(key)
        return copy.deepcopy(item) if item is not None else None

    def update(self, table, key, field_path, value):
        self.calls.append(("update", table, key, field_path))
        self._maybe_fail("update", table)
        with self._lock:
            if key not in self.tables[table]:
                raise DownstreamError(detail="ConditionalCheckFailedException")
            target = self.tables[table][key]
            parts = field_path.split(".")
            for part in parts[:-1]:
                target = target.setdefault(part, {})
            target[parts[-1]] = copy.deepcopy(value)

    def scan(self, table):
        self.calls.append(("scan", table))
        self._maybe_fail("scan", table)
        if self.before_scan:
            self.before_scan()
        with self._lock:
            return copy.deepcopy(list(self.tables[table].values()))

    def ops(self, op, table=None):
        return [c for c in self.calls if c[0] == op and (table is None or c[1] == table)]


class FakeLockApi:
    """Records sign-in / peek / unlock calls; failures and delays per lock id."""

    def __init__(self, clock=None):
        self.clock = clock
        self.sign_ins = []
        self.peeks = []
        self.unlocks = []
        self.peek_delay = {}
        self.fail_peek = set()
        self.fail_unlock = set()
        self.fail_sign_in = False

    def sign_in(self, username, password):
        self.sign_ins.append(username)
        if self.fail_sign_in:
            raise DownstreamError(detail="401 from sign_in")
        return {"x-login-secret": f"secret-{username}"}

    def peek(self, lock_id, headers):
        delay = self.peek_delay.get(lock_id)
        if delay:
            threading.Event().wait(delay)
        self.peeks.append(lock_id)
        if lock_id in self.fail_peek:
            raise DownstreamTimeout(detail=f"peek {lock_id} timed out")
        return f"Lock {lock_id} is online"

    def unlock(self, lock_id, headers):
        self.unlocks.append((lock_id, self.clock() if self.clock else None))
        if lock_id in self.fail_unlock:
            raise DownstreamError(detail=f"unlock {lock_id} returned 500")
        return f"Lock {lock_id} unlocked"


class ListRelay:
    def __init__(self):
        self.messages = []

    def send(self, text):
        self.messages.append(text)


class FakeClock:
    def __init__(self, now=NOW):
        self.now = now
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += timedelta(seconds=seconds)


def user_item(user_id="U1", **speakeasy):
    data = {"enabled": True}
    data.update(speakeasy)
    return {"id": user_id, "speakeasy": data}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    s = FakeStore()
    s.put(SETTINGS, {"key": "slack_auth_token", "value": TOKEN})
    s.put(
        SETTINGS,
        {
            "key": "logins",
            "value": [
                {"username": "door1@example.com", "password": "pw1"},
                {"username": "door2@example.com", "password": "pw2"},
            ],
        },
    )
    s.put(USERS, user_item("U1"))
    return s


@pytest.fixture
def lock_api(clock):
    return FakeLockApi(clock=clock)


@pytest.fixture
def relay():
    return ListRelay()


@pytest.fixture
def config():
    return Config(
        settings_table=SETTINGS,
        users_table=USERS,
        catalog=TEST_CATALOG,
        compound_unlock_delay_seconds=10.0,
    )
