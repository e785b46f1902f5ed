"""Ecovacs robot vacuum client library: XMPP-generation models."""

from .classifier import MessageKind, classify
from .client import EcovacsClient
from .const import ChargeStatus, CleanStatus, FanSpeed
from .events import Event, EventEmitter, events_for
from .models import CleanedArea, CleaningTotals, DeviceState, NetworkInfo, Pose, VacuumInfo
from .projector import Projection, project
from .protocol import EnvelopeCodec, Fragment, ProtocolError, parse_json_fragment, parse_stanza
from .session import EcovacsAuthError, EcovacsConnectionError, XmppSession

__all__ = [
    "EcovacsClient",
    "EcovacsAuthError",
    "EcovacsConnectionError",
    "ProtocolError",
    "XmppSession",
    "DeviceState",
    "ChargeStatus",
    "CleanStatus",
    "CleanedArea",
    "CleaningTotals",
    "EnvelopeCodec",
    "Event",
    "EventEmitter",
    "FanSpeed",
    "Fragment",
    "MessageKind",
    "NetworkInfo",
    "Pose",
    "Projection",
    "VacuumInfo",
    "classify",
    "events_for",
    "parse_json_fragment",
    "parse_stanza",
    "project",
]
