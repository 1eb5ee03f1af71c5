import requests
import pytest

from app.services import notifier as notifier_mod
from app.services.notifier import Notifier, TelegramSender


class FakeResponse:
    def __init__(self, status_code=200, data=None, text=""):
        self.status_code = status_code
        self._data = data if data is not None else {"ok": True}
        self.text = text

    def json(self):
        return self._data


@pytest.fixture
def posts(monkeypatch):
    calls = []
    responses = []

    def fake_post(url, json=None, timeout=None, verify=None):
        calls.append({"url": url, "json": json, "timeout": timeout, "verify": verify})
        r = responses.pop(0) if responses else FakeResponse()
        if isinstance(r, Exception):
            raise r
        return r

    monkeypatch.setattr(notifier_mod.requests, "post", fake_post)
    return calls, responses


def test_sender_posts_markdown_message(posts):
    calls, _ = posts
    s = TelegramSender("123:abc", "-100", timeout=3)
    assert s.send("hello *world*")
    assert calls[0]["url"] == "https://api.telegram.org/bot123:abc/sendMessage"
    assert calls[0]["json"] == {"chat_id": "-100", "text": "hello *world*", "parse_mode": "Markdown"}
    assert calls[0]["timeout"] == 3
    assert calls[0]["verify"]


def test_sender_reports_failures(posts):
    calls, responses = posts
    s = TelegramSender("123:abc", "-100")
    responses.append(FakeResponse(status_code=401, text="Unauthorized"))
    assert not s.send("x")
    assert s.last_error == "HTTP 401"

    responses.append(FakeResponse(data={"ok": False, "description": "chat not found"}))
    assert not s.send("x")
    assert s.last_error == "chat not found"

    responses.append(requests.exceptions.ConnectionError("no route"))
    assert not s.send("x")
    assert "no route" in s.last_error


def test_unconfigured_notifier_skips_delivery(posts):
    calls, _ = posts
    n = Notifier(TelegramSender("", "-100"))
    assert n.notify("alert") is False
    n = Notifier(TelegramSender("123:abc", ""))
    assert n.notify("alert") is False
    assert calls == []


def test_notify_delivers_in_background(posts):
    calls, responses = posts
    responses.append(requests.exceptions.Timeout("slow"))
    n = Notifier(TelegramSender("123:abc", "-100"))
    n.start()
    try:
        assert n.notify("first") is True
        assert n.notify("second") is True
        n.flush()
    finally:
        n.stop()

    assert [c["json"]["text"] for c in calls] == ["first", "second"]
    recent = n.recent()
    assert [r["ok"] for r in recent] == [False, True]
    assert "slow" in recent[0]["err"]


def test_send_test_is_synchronous(posts):
    calls, _ = posts
    n = Notifier(TelegramSender("123:abc", "-100"))
    ok, err = n.send_test("ping")
    assert ok and err == ""
    assert len(calls) == 1
