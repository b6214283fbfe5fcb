import pytest
import requests

from speakeasy.errors import DownstreamError, DownstreamTimeout
from speakeasy.lock_api import LockApiClient


class StubResponse:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else str(body)

    def json(self):
        if self._body is None:
            raise ValueError("No JSON object could be decoded")
        return self._body


class StubSession:
    def __init__(self, response=None, raises=None):
        self.response = response
        self.raises = raises
        self.posts = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.posts.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        if self.raises:
            raise self.raises
        return self.response


def _client(session):
    return LockApiClient("https://api.getkisi.com/", timeout=4, session=session)


def test_sign_in_returns_session_headers():
    session = StubSession(StubResponse(body={"secret": "abc"}))

    headers = _client(session).sign_in("door@example.com", "pw")

    assert headers["x-login-secret"] == "abc"
    assert headers["accept"] == "application/json"
    post = session.posts[0]
    assert post["url"] == "https://api.getkisi.com/logins/sign_in"
    assert post["json"] == {"user": {"email": "door@example.com", "password": "pw"}}
    assert post["timeout"] == 4


def test_sign_in_without_secret_fails():
    session = StubSession(StubResponse(body={"error": "bad credentials"}))
    with pytest.raises(DownstreamError):
        _client(session).sign_in("door@example.com", "pw")


def test_peek_and_unlock_return_message():
    session = StubSession(StubResponse(body={"message": "Unlocked!"}))
    client = _client(session)
    headers = {"x-login-secret": "abc"}

    assert client.peek("3768", headers) == "Unlocked!"
    assert client.unlock("3768", headers) == "Unlocked!"
    assert [p["url"] for p in session.posts] == [
        "https://api.getkisi.com/locks/3768/peek",
        "https://api.getkisi.com/locks/3768/unlock",
    ]
    assert session.posts[1]["headers"] == headers


def test_timeout_is_downstream_timeout():
    session = StubSession(raises=requests.Timeout("read timed out"))
    with pytest.raises(DownstreamTimeout):
        _client(session).unlock("3768", {})


def test_connection_error_is_downstream_error():
    session = StubSession(raises=requests.ConnectionError("refused"))
    with pytest.raises(DownstreamError):
        _client(session).peek("3768", {})


def test_non_success_status_is_downstream_error():
    session = StubSession(StubResponse(status_code=403, body={"message": "forbidden"}))
    with pytest.raises(DownstreamError) as exc_info:
        _client(session).unlock("3768", {})
    assert "403" in exc_info.value.detail


def test_non_json_body_is_downstream_error():
    session = StubSession(StubResponse(body=None, text="<html>"))
    with pytest.raises(DownstreamError):
        _client(session).unlock("3768", {})
