"""Shared test fixtures for Ecovacs adapter tests."""

from __future__ import annotations

from typing import Any

import pytest

from ecovacs_adapter.client import EcovacsClient
from ecovacs_adapter.models import VacuumInfo


# --- Sample stanzas for testing ---

VACUUM_RECORD = {"did": "E0000001", "class": "126", "nick": "Hallway", "company": "eco-legacy"}
VACUUM_ADDRESS = "E0000001@126.ecorobot.net/atom"
USER_ADDRESS = "user123@ecouser.net/resource01"


def iq(inner: str, stanza_type: str = "set") -> str:
    """Wrap a ctl element the way the message server pushes it."""
    return (
        f'<iq xmlns="jabber:client" to="{USER_ADDRESS}" from="{VACUUM_ADDRESS}" '
        f'type="{stanza_type}" id="42"><query xmlns="com:ctl">{inner}</query></iq>'
    )


CLEAN_REPORT_STANZA = iq(
    '<ctl td="CleanReport"><clean type="auto" speed="strong" st="s" p="-1.234,2.0,3.56,-4"/></ctl>'
)
BATTERY_STANZA = iq('<ctl td="BatteryInfo"><battery power="80"/></ctl>')
CHARGE_STATE_STANZA = iq('<ctl td="ChargeState"><charge type="SlotCharging"/></ctl>')
LIFE_SPAN_STANZA = iq('<ctl td="LifeSpan" type="DustCaseHeap " val="50" total="100"/>')
ERROR_ENVELOPE_STANZA = (
    f'<iq xmlns="jabber:client" to="{USER_ADDRESS}" from="{VACUUM_ADDRESS}" type="error" id="7">'
    '<error code="404" type="cancel">'
    '<item-not-found xmlns="urn:ietf:params:xml:ns:xmpp-stanzas"/></error></iq>'
)


class FakeSession:
    """Stand-in for XmppSession that records what is sent."""

    def __init__(self, connected: bool = True) -> None:
        self.connected = connected
        self.sent: list[str] = []
        self.on_stanza: Any = None
        self.on_ready: Any = None
        self.listening = False

    async def connect(self) -> None:
        self.connected = True
        if self.on_ready:
            self.on_ready()

    async def disconnect(self) -> None:
        self.connected = False

    async def start_listening(self) -> None:
        self.listening = True

    async def send(self, data: str) -> None:
        self.sent.append(data)


@pytest.fixture
def vacuum() -> VacuumInfo:
    return VacuumInfo.from_dict(VACUUM_RECORD)


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def client(vacuum: VacuumInfo, session: FakeSession) -> EcovacsClient:
    return EcovacsClient(
        "user123", "ecouser.net", "resource01", "secret", vacuum, continent="eu", session=session
    )
