import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, ReadTimeoutError

from speakeasy.errors import DownstreamError, DownstreamTimeout
from speakeasy.store import StoreClient


class StubTable:
    def __init__(self, items=None, pages=None, raises=None):
        self.items = items or {}
        self.pages = pages or []
        self.raises = raises
        self.calls = []

    def get_item(self, Key):
        self.calls.append(("get_item", Key))
        if self.raises:
            raise self.raises
        value = self.items.get(tuple(Key.values())[0])
        return {"Item": value} if value is not None else {}

    def update_item(self, **kwargs):
        self.calls.append(("update_item", kwargs))
        if self.raises:
            raise self.raises
        return {}

    def scan(self, **kwargs):
        self.calls.append(("scan", kwargs))
        if self.raises:
            raise self.raises
        return self.pages.pop(0)


class StubResource:
    def __init__(self, tables):
        self.tables = tables

    def Table(self, name):
        return self.tables[name]


def _client(**tables):
    return StoreClient(StubResource(tables), key_names={"settings": "key", "users": "id"})


def test_get_returns_item():
    table = StubTable(items={"slack_auth_token": {"key": "slack_auth_token", "value": "t"}})
    store = _client(settings=table)

    assert store.get("settings", "slack_auth_token")["value"] == "t"
    assert table.calls == [("get_item", {"key": "slack_auth_token"})]


def test_get_missing_is_none():
    store = _client(users=StubTable())
    assert store.get("users", "U404") is None


def test_update_is_conditional_on_existence():
    table = StubTable()
    store = _client(users=table)

    store.update("users", "U1", "speakeasy.lastAccess", "2026-10-16T12:00:00.000+00:00")

    _, kwargs = table.calls[0]
    assert kwargs["Key"] == {"id": "U1"}
    assert kwargs["UpdateExpression"] == "SET #f0.#f1 = :v"
    assert kwargs["ConditionExpression"] == "attribute_exists(#pk)"
    assert kwargs["ExpressionAttributeNames"] == {"#f0": "speakeasy", "#f1": "lastAccess", "#pk": "id"}
    assert kwargs["ExpressionAttributeValues"] == {":v": "2026-10-16T12:00:00.000+00:00"}


def test_scan_follows_pagination():
    table = StubTable(
        pages=[
            {"Items": [{"id": "U1"}], "LastEvaluatedKey": {"id": "U1"}},
            {"Items": [{"id": "U2"}]},
        ]
    )
    store = _client(users=table)

    assert store.scan("users") == [{"id": "U1"}, {"id": "U2"}]
    assert table.calls[1] == ("scan", {"ExclusiveStartKey": {"id": "U1"}})


def test_client_error_becomes_downstream_error():
    err = ClientError(
        {"Error": {"Code": "ConditionalCheckFailedException", "Message": "nope"}}, "UpdateItem"
    )
    store = _client(users=StubTable(raises=err))

    with pytest.raises(DownstreamError) as exc_info:
        store.update("users", "U1", "speakeasy.attempts", [])

    assert "ConditionalCheckFailedException" in exc_info.value.detail


def test_connection_error_becomes_downstream_error():
    store = _client(users=StubTable(raises=EndpointConnectionError(endpoint_url="http://ddb")))

    with pytest.raises(DownstreamError):
        store.scan("users")


def test_read_timeout_becomes_downstream_timeout():
    store = _client(users=StubTable(raises=ReadTimeoutError(endpoint_url="http://ddb")))

    with pytest.raises(DownstreamTimeout):
        store.get("users", "U1")
