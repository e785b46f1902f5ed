"""Tests for ecovacs_adapter.session: XMPP login and listener."""

from __future__ import annotations

import asyncio
import base64
import xml.etree.ElementTree as ET
from typing import Any

import pytest

from conftest import BATTERY_STANZA
from ecovacs_adapter import session as session_module
from ecovacs_adapter.session import EcovacsAuthError, EcovacsConnectionError, XmppSession

OPEN = '<open xmlns="urn:ietf:params:xml:ns:xmpp-framing" from="ecouser.net" id="s1" version="1.0"/>'
FEATURES = (
    '<stream:features xmlns:stream="http://etherx.jabber.org/streams">'
    '<mechanisms xmlns="urn:ietf:params:xml:ns:xmpp-sasl"><mechanism>PLAIN</mechanism></mechanisms>'
    "</stream:features>"
)
SUCCESS = '<success xmlns="urn:ietf:params:xml:ns:xmpp-sasl"/>'
FAILURE = '<failure xmlns="urn:ietf:params:xml:ns:xmpp-sasl"><not-authorized/></failure>'
BIND_RESULT = '<iq type="result" id="bind_1"/>'
SESSION_RESULT = '<iq type="result" id="session_1"/>'

LOGIN_REPLIES = [OPEN, FEATURES, SUCCESS, OPEN, FEATURES, BIND_RESULT, SESSION_RESULT]


def local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


class FakeWebSocket:
    """Scripted WebSocket: recv() pops replies, iteration yields pushes."""

    def __init__(self, replies: list[str], incoming: list[str | bytes] | None = None) -> None:
        self.replies = list(replies)
        self.incoming = list(incoming or [])
        self.sent: list[str] = []
        self.closed = False

    async def send(self, data: str) -> None:
        self.sent.append(data)

    async def recv(self) -> str:
        if not self.replies:
            raise OSError("connection closed by test")
        return self.replies.pop(0)

    async def close(self) -> None:
        self.closed = True

    async def __aiter__(self) -> Any:
        for message in self.incoming:
            yield message


@pytest.fixture
def xmpp() -> XmppSession:
    return XmppSession("user123", "ecouser.net", "resource01", "secret", continent="eu")


def patch_connect(monkeypatch: pytest.MonkeyPatch, ws: FakeWebSocket) -> list[dict[str, Any]]:
    calls: list[dict[str, Any]] = []

    async def fake_connect(url: str, **kwargs: Any) -> FakeWebSocket:
        calls.append({"url": url, **kwargs})
        return ws

    monkeypatch.setattr(session_module.websockets, "connect", fake_connect)
    return calls


class TestXmppSessionInit:
    """Tests for XmppSession initialization."""

    def test_url_from_continent(self, xmpp: XmppSession) -> None:
        assert xmpp.server_address == "msg-eu.ecouser.net"
        assert xmpp.url == "wss://msg-eu.ecouser.net:5223/"

    def test_server_address_override(self) -> None:
        xmpp = XmppSession("u", "ecouser.net", "r", "s", server_address="10.0.0.2", port=443)
        assert xmpp.url == "wss://10.0.0.2:443/"

    def test_jid(self, xmpp: XmppSession) -> None:
        assert xmpp.jid == "user123@ecouser.net/resource01"

    def test_initially_disconnected(self, xmpp: XmppSession) -> None:
        assert not xmpp.connected


class TestLogin:
    """Tests for connect() and the login sequence."""

    def test_login_sequence(self, xmpp: XmppSession, monkeypatch: pytest.MonkeyPatch) -> None:
        ws = FakeWebSocket(LOGIN_REPLIES)
        calls = patch_connect(monkeypatch, ws)
        ready: list[bool] = []
        xmpp.on_ready = lambda: ready.append(True)

        asyncio.run(xmpp.connect())

        assert xmpp.connected
        assert ready == [True]
        assert calls[0]["url"] == "wss://msg-eu.ecouser.net:5223/"
        assert calls[0]["subprotocols"] == ["xmpp"]

        sent = [ET.fromstring(data) for data in ws.sent]
        assert [local_name(element.tag) for element in sent] == ["open", "auth", "open", "iq", "iq", "presence"]
        assert sent[0].get("to") == "ecouser.net"
        assert sent[1].get("mechanism") == "PLAIN"
        expected = base64.b64encode(b"\x00user123\x000/resource01/secret").decode("ascii")
        assert sent[1].text == expected
        assert sent[3].get("id") == "bind_1"
        assert sent[3][0][0].text == "resource01"
        assert sent[4].get("id") == "session_1"

    def test_auth_rejected(self, xmpp: XmppSession, monkeypatch: pytest.MonkeyPatch) -> None:
        ws = FakeWebSocket([OPEN, FEATURES, FAILURE])
        patch_connect(monkeypatch, ws)
        with pytest.raises(EcovacsAuthError):
            asyncio.run(xmpp.connect())
        assert ws.closed
        assert not xmpp.connected

    def test_auth_error_is_connection_error(self) -> None:
        assert issubclass(EcovacsAuthError, EcovacsConnectionError)

    def test_bind_refused(self, xmpp: XmppSession, monkeypatch: pytest.MonkeyPatch) -> None:
        replies = [OPEN, FEATURES, SUCCESS, OPEN, FEATURES, '<iq type="error" id="bind_1"/>']
        patch_connect(monkeypatch, FakeWebSocket(replies))
        with pytest.raises(EcovacsConnectionError, match="bind_1"):
            asyncio.run(xmpp.connect())

    def test_stream_closed_during_login(self, xmpp: XmppSession, monkeypatch: pytest.MonkeyPatch) -> None:
        ws = FakeWebSocket([OPEN, '<close xmlns="urn:ietf:params:xml:ns:xmpp-framing"/>'])
        patch_connect(monkeypatch, ws)
        with pytest.raises(EcovacsConnectionError):
            asyncio.run(xmpp.connect())
        assert ws.closed

    def test_connection_refused(self, xmpp: XmppSession, monkeypatch: pytest.MonkeyPatch) -> None:
        async def refuse(url: str, **kwargs: Any) -> None:
            raise OSError("Connection refused")

        monkeypatch.setattr(session_module.websockets, "connect", refuse)
        with pytest.raises(EcovacsConnectionError, match="Failed to connect"):
            asyncio.run(xmpp.connect())


class TestSend:
    """Tests for send() and disconnect()."""

    def test_send_without_connection_raises(self, xmpp: XmppSession) -> None:
        with pytest.raises(EcovacsConnectionError):
            asyncio.run(xmpp.send("<presence/>"))

    def test_send_and_disconnect(self, xmpp: XmppSession, monkeypatch: pytest.MonkeyPatch) -> None:
        ws = FakeWebSocket(LOGIN_REPLIES)
        patch_connect(monkeypatch, ws)

        async def run() -> None:
            await xmpp.connect()
            await xmpp.send("<presence/>")
            await xmpp.disconnect()

        asyncio.run(run())
        assert ws.sent[-2] == "<presence/>"
        assert local_name(ET.fromstring(ws.sent[-1]).tag) == "close"
        assert ws.closed
        assert not xmpp.connected


class TestStartListening:
    """Tests for the listener loop."""

    def test_delivers_stanzas(self, xmpp: XmppSession, monkeypatch: pytest.MonkeyPatch) -> None:
        ws = FakeWebSocket(LOGIN_REPLIES, incoming=[BATTERY_STANZA, b"<presence/>"])
        patch_connect(monkeypatch, ws)
        received: list[str] = []

        def on_stanza(data: str) -> None:
            received.append(data)
            if len(received) == 2:
                xmpp._should_reconnect = False

        xmpp.on_stanza = on_stanza

        async def run() -> None:
            await xmpp.connect()
            await xmpp.start_listening()

        asyncio.run(run())
        assert received == [BATTERY_STANZA, "<presence/>"]
        assert not xmpp.connected

    def test_connects_when_needed(self, xmpp: XmppSession, monkeypatch: pytest.MonkeyPatch) -> None:
        ws = FakeWebSocket(LOGIN_REPLIES, incoming=[BATTERY_STANZA])
        patch_connect(monkeypatch, ws)

        def on_stanza(data: str) -> None:
            xmpp._should_reconnect = False

        xmpp.on_stanza = on_stanza
        asyncio.run(xmpp.start_listening())
        assert local_name(ET.fromstring(ws.sent[1]).tag) == "auth"

    def test_auth_rejected_stops_reconnecting(self, xmpp: XmppSession, monkeypatch: pytest.MonkeyPatch) -> None:
        patch_connect(monkeypatch, FakeWebSocket([OPEN, FEATURES, FAILURE]))
        asyncio.run(xmpp.start_listening())
        assert not xmpp.connected
        assert not xmpp._should_reconnect
