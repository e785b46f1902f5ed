"""Fragment parsing and envelope building for the Ecovacs XMPP protocol.

Inbound stanza structure (push transport):
    <iq type="set|result" ...>
      <query xmlns="com:ctl">
        <ctl td="CleanReport" ...>      <- the fragment
          <clean type="auto" .../>      <- its optional child
        </ctl>
      </query>
    </iq>

Delivery failures arrive as:
    <iq type="error" ...>
      <error code="..."><...></error>
    </iq>

Outbound envelope:
    <iq id="N" to="{did}@{class}.ecorobot.net/atom" from="{user}@{host}/{resource}" type="set">
      <query xmlns="com:ctl">{payload}</query>
    </iq>
"""

from __future__ import annotations

import threading
import xml.etree.ElementTree as ET
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

import orjson

from .const import NS_CTL, NS_PING


class ProtocolError(Exception):
    """Raised when an inbound message cannot be parsed."""


@dataclass(frozen=True)
class Fragment:
    """A single inbound message reduced to an attribute bag plus optional child."""

    name: str = ""
    attrs: Mapping[str, Any] = field(default_factory=dict)
    child: Fragment | None = None
    is_error: bool = False  # came out of a transport error envelope


def _local_name(tag: str) -> str:
    """'{com:ctl}query' -> 'query'."""
    return tag.rsplit("}", 1)[-1]


def _fragment_from_element(element: ET.Element) -> Fragment:
    child = _fragment_from_element(element[0]) if len(element) else None
    return Fragment(
        name=_local_name(element.tag),
        attrs=dict(element.attrib),
        child=child,
    )


def parse_stanza(data: str | bytes) -> Fragment | None:
    """Parse a push-transport stanza into a Fragment.

    Args:
        data: One complete XML stanza.

    Returns:
        The fragment, or None when the stanza carries no device payload
        (presence, ping results, bind responses...).

    Raises:
        ProtocolError: If the stanza is not well-formed XML.
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise ProtocolError(f"Invalid stanza XML: {e}") from e

    if _local_name(root.tag) != "iq" or not len(root):
        return None

    stanza_type = root.get("type")
    first = root[0]
    first_name = _local_name(first.tag)

    if stanza_type in ("set", "result") and first_name == "query" and len(first):
        return _fragment_from_element(first[0])

    if stanza_type == "error" and first_name == "error" and len(first):
        return Fragment(name="error", attrs=dict(first.attrib), is_error=True)

    return None


def _fragment_from_mapping(name: str, obj: Mapping[str, Any]) -> Fragment:
    """Scalars become attributes; the first nested object becomes the child.

    A nested ``ctl`` object is the same wrapper the stanzas carry, so it is
    unwrapped: its scalars join the attributes and its own nested object
    becomes the child (``{"ctl": {"battery": {...}}}`` -> child ``battery``).
    """
    attrs: dict[str, Any] = {}
    child: Fragment | None = None
    for key, value in obj.items():
        if not isinstance(value, Mapping):
            attrs[key] = value
        elif key == "ctl":
            inner = _fragment_from_mapping(key, value)
            for inner_key, inner_value in inner.attrs.items():
                attrs.setdefault(inner_key, inner_value)
            if child is None:
                child = inner.child
        elif child is None:
            child = _fragment_from_mapping(key, value)
    return Fragment(name=name, attrs=attrs, child=child)


def parse_json_fragment(data: str | bytes | Mapping[str, Any]) -> Fragment:
    """Parse a request/response payload into a Fragment.

    Top-level scalars become attributes and a nested object becomes the
    child, the same shape ``parse_stanza`` produces. ``{"ret": "fail", ...}``
    is the channel's error envelope and is flagged as such.

    Raises:
        ProtocolError: If the payload is not a JSON object.
    """
    if isinstance(data, (str, bytes)):
        try:
            obj = orjson.loads(data)
        except orjson.JSONDecodeError as e:
            raise ProtocolError(f"Invalid JSON payload: {e}") from e
    else:
        obj = data

    if not isinstance(obj, Mapping):
        raise ProtocolError(f"JSON payload must be an object, got {type(obj).__name__}")

    fragment = _fragment_from_mapping("ctl", obj)
    return replace(fragment, is_error=obj.get("ret") == "fail")


def build_ctl(td: str, attrs: Mapping[str, str] | None = None, child: ET.Element | None = None) -> ET.Element:
    """Build a ``<ctl td="...">`` command payload."""
    ctl = ET.Element("ctl", {"td": td, **(attrs or {})})
    if child is not None:
        ctl.append(child)
    return ctl


class EnvelopeCodec:
    """Builds outbound ``iq`` envelopes with a per-instance request id.

    Ids start at 1 and are never reused. The counter is locked so a
    threaded transport can share one codec.
    """

    def __init__(self, sender: str) -> None:
        self.sender = sender
        self._next_id = 1
        self._lock = threading.Lock()

    def _take_id(self) -> str:
        with self._lock:
            request_id = self._next_id
            self._next_id += 1
        return str(request_id)

    def wrap(self, payload: ET.Element, recipient: str) -> ET.Element:
        """Wrap a command payload in a ``com:ctl`` query envelope."""
        iq = ET.Element("iq", {
            "id": self._take_id(),
            "to": recipient,
            "from": self.sender,
            "type": "set",
        })
        query = ET.SubElement(iq, "query", {"xmlns": NS_CTL})
        query.append(payload)
        return iq

    def ping(self, recipient: str) -> ET.Element:
        """Build the liveness envelope (empty ``urn:xmpp:ping`` query)."""
        iq = ET.Element("iq", {
            "id": self._take_id(),
            "to": recipient,
            "from": self.sender,
            "type": "get",
        })
        ET.SubElement(iq, "query", {"xmlns": NS_PING})
        return iq

    @staticmethod
    def serialize(envelope: ET.Element) -> str:
        return ET.tostring(envelope, encoding="unicode")
