"""XMPP push session over a WebSocket (RFC 7395 framing).

Each WebSocket message carries exactly one complete element, so stanzas
can be handed to the parser as they arrive without stream reassembly.

Login sequence:
    -> <open to="{hostname}"/>          <- <open/>, <stream:features/>
    -> <auth mechanism="PLAIN">         <- <success/> | <failure/>
    -> <open to="{hostname}"/>          <- <open/>, <stream:features/>
    -> <iq><bind><resource/></bind>     <- <iq type="result"/>
    -> <iq><session/></iq>              <- <iq type="result"/>
    -> <presence/>
"""

from __future__ import annotations

import asyncio
import base64
import logging
import random
import xml.etree.ElementTree as ET
from collections.abc import Callable
from typing import Any

import websockets
import websockets.exceptions

from .const import (
    DEFAULT_PORT,
    LOGIN_STEP_TIMEOUT,
    NS_BIND,
    NS_FRAMING,
    NS_SASL,
    NS_SESSION,
    RECONNECT_BACKOFF_FACTOR,
    RECONNECT_INITIAL_DELAY,
    RECONNECT_MAX_DELAY,
    SERVER_ADDRESS_TEMPLATE,
    WEBSOCKET_URL_TEMPLATE,
)

_LOGGER = logging.getLogger(__name__)

_BIND_ID = "bind_1"
_SESSION_ID = "session_1"


class EcovacsConnectionError(Exception):
    """Raised when the session cannot be established or is not connected."""


class EcovacsAuthError(EcovacsConnectionError):
    """Raised when the server rejects the credentials."""


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


class XmppSession:
    """Async XMPP-over-WebSocket session for the Ecovacs message server.

    Usage:
        session = XmppSession(user, hostname, resource, secret, continent="eu")
        session.on_stanza = my_callback
        await session.connect()
        await session.start_listening()
        # ...later...
        await session.disconnect()
    """

    def __init__(
        self,
        user: str,
        hostname: str,
        resource: str,
        secret: str,
        continent: str = "",
        server_address: str | None = None,
        port: int = DEFAULT_PORT,
    ) -> None:
        self.user = user
        self.hostname = hostname
        self.resource = resource
        self.server_address = server_address or SERVER_ADDRESS_TEMPLATE.format(continent=continent)
        self.port = port
        self.url = WEBSOCKET_URL_TEMPLATE.format(address=self.server_address, port=port)
        self.on_stanza: Callable[[str], Any] | None = None
        self.on_ready: Callable[[], Any] | None = None

        self._password = f"0/{resource}/{secret}"
        self._ws: Any = None
        self._connected = asyncio.Event()
        self._should_reconnect = True

    @property
    def jid(self) -> str:
        return f"{self.user}@{self.hostname}/{self.resource}"

    @property
    def connected(self) -> bool:
        """Return True if the stream is open and logged in."""
        return self._ws is not None and self._connected.is_set()

    async def connect(self) -> None:
        """Open the WebSocket and log in.

        Raises:
            EcovacsConnectionError: If the server cannot be reached or the
                stream negotiation fails.
            EcovacsAuthError: If the credentials are rejected.
        """
        _LOGGER.debug("Connecting as %s to %s", self.jid, self.url)
        try:
            self._ws = await websockets.connect(
                self.url, subprotocols=["xmpp"], ping_interval=None
            )
        except (OSError, websockets.exceptions.WebSocketException) as e:
            raise EcovacsConnectionError(f"Failed to connect to {self.url}: {e}") from e

        try:
            await self._login()
        except EcovacsConnectionError:
            await self._close_ws()
            raise
        except (OSError, websockets.exceptions.WebSocketException, asyncio.TimeoutError) as e:
            await self._close_ws()
            raise EcovacsConnectionError(f"Login to {self.url} failed: {e}") from e

        self._connected.set()
        _LOGGER.info("Session started for %s", self.jid)
        if self.on_ready:
            self.on_ready()

    async def _login(self) -> None:
        await self._open_stream()
        await self._recv_until("features")

        credentials = f"\0{self.user}\0{self._password}".encode("utf-8")
        auth = ET.Element("auth", {"xmlns": NS_SASL, "mechanism": "PLAIN"})
        auth.text = base64.b64encode(credentials).decode("ascii")
        await self._send_element(auth)

        reply = await self._recv_element()
        if _local_name(reply.tag) == "failure":
            raise EcovacsAuthError(f"Authentication rejected for {self.user}@{self.hostname}")
        if _local_name(reply.tag) != "success":
            raise EcovacsConnectionError(f"Unexpected SASL reply <{_local_name(reply.tag)}>")

        await self._open_stream()
        await self._recv_until("features")

        bind = ET.Element("iq", {"type": "set", "id": _BIND_ID})
        resource = ET.SubElement(ET.SubElement(bind, "bind", {"xmlns": NS_BIND}), "resource")
        resource.text = self.resource
        await self._send_element(bind)
        await self._expect_result(_BIND_ID)

        session = ET.Element("iq", {"type": "set", "id": _SESSION_ID})
        ET.SubElement(session, "session", {"xmlns": NS_SESSION})
        await self._send_element(session)
        await self._expect_result(_SESSION_ID)

        await self._send_element(ET.Element("presence"))

    async def _open_stream(self) -> None:
        await self._send_element(ET.Element("open", {
            "xmlns": NS_FRAMING,
            "to": self.hostname,
            "version": "1.0",
        }))

    async def _send_element(self, element: ET.Element) -> None:
        await self._ws.send(ET.tostring(element, encoding="unicode"))

    async def _recv_element(self) -> ET.Element:
        data = await asyncio.wait_for(self._ws.recv(), timeout=LOGIN_STEP_TIMEOUT)
        try:
            return ET.fromstring(data)
        except ET.ParseError as e:
            raise EcovacsConnectionError(f"Invalid element during login: {e}") from e

    async def _recv_until(self, name: str) -> ET.Element:
        """Read elements until one named ``name`` arrives (skipping <open/>)."""
        while True:
            element = await self._recv_element()
            local = _local_name(element.tag)
            if local == name:
                return element
            if local in ("close", "failure"):
                raise EcovacsConnectionError(f"Server closed the stream during login (<{local}>)")

    async def _expect_result(self, iq_id: str) -> None:
        while True:
            element = await self._recv_until("iq")
            if element.get("id") != iq_id:
                continue
            if element.get("type") != "result":
                raise EcovacsConnectionError(f"Server refused {iq_id}: type={element.get('type')}")
            return

    async def send(self, data: str) -> None:
        """Send one serialized stanza.

        Raises:
            EcovacsConnectionError: If not connected.
        """
        if not self.connected:
            raise EcovacsConnectionError("Not connected to message server")
        await self._ws.send(data)

    async def start_listening(self) -> None:
        """Deliver inbound stanzas to on_stanza, reconnecting on loss.

        Runs until disconnect() is called.
        """
        self._should_reconnect = True
        retry_delay = RECONNECT_INITIAL_DELAY

        while self._should_reconnect:
            try:
                if not self.connected:
                    await self.connect()

                retry_delay = RECONNECT_INITIAL_DELAY  # reset on success

                async for raw_message in self._ws:
                    if isinstance(raw_message, bytes):
                        raw_message = raw_message.decode("utf-8", errors="replace")
                    if self.on_stanza:
                        self.on_stanza(raw_message)

            except EcovacsAuthError:
                _LOGGER.error("Authentication rejected, not reconnecting")
                self._should_reconnect = False
            except EcovacsConnectionError as e:
                _LOGGER.warning("Connection failed: %s", e)
            except websockets.exceptions.ConnectionClosed as e:
                _LOGGER.warning("Connection closed: %s", e)
            except asyncio.CancelledError:
                _LOGGER.debug("Listener cancelled")
                return
            except Exception:
                _LOGGER.exception("Unexpected error in listener")
            finally:
                self._connected.clear()

            if not self._should_reconnect:
                break

            # Exponential backoff with jitter
            jitter = random.uniform(0, 1)
            wait = retry_delay + jitter
            _LOGGER.info("Reconnecting in %.1fs...", wait)
            await asyncio.sleep(wait)
            retry_delay = min(retry_delay * RECONNECT_BACKOFF_FACTOR, RECONNECT_MAX_DELAY)

    async def disconnect(self) -> None:
        """Close the stream and stop reconnecting."""
        self._should_reconnect = False
        if self.connected:
            try:
                await self._send_element(ET.Element("close", {"xmlns": NS_FRAMING}))
            except (OSError, websockets.exceptions.WebSocketException):
                _LOGGER.debug("Could not send stream close")
        self._connected.clear()
        await self._close_ws()
        _LOGGER.info("Closed XMPP session")

    async def _close_ws(self) -> None:
        if self._ws:
            await self._ws.close()
            self._ws = None
