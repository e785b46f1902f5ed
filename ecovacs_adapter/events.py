"""Map state changes to public events and dispatch them to listeners."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, NamedTuple

from .classifier import MessageKind
from .const import KNOWN_COMPONENTS
from .models import DeviceState

_LOGGER = logging.getLogger(__name__)

LIFE_SPAN_EVENT_PREFIX = "LifeSpan_"

# Diff path -> public event name. These names are a compatibility contract.
FIELD_EVENTS: dict[str, str] = {
    "charge_status": "ChargeState",
    "battery_level": "BatteryInfo",
    "clean_status": "CleanReport",
    "fan_speed": "FanSpeed",
    "last_cleaned_area": "LastAreaValues",
    "last_error": "Error",
    "water_level": "WaterLevel",
    "water_box_present": "WaterBoxInfo",
    "dust_case_present": "DustCaseInfo",
    "pose": "DeebotPosition",
    "charger_pose": "ChargePosition",
    "network.ip": "NetInfoIP",
    "network.ssid": "NetInfoWifiSSID",
    "sleep_status": "SleepStatus",
    "totals.area": "CleanSum_totalSquareMeters",
    "totals.seconds": "CleanSum_totalSeconds",
    "totals.count": "CleanSum_totalNumber",
}

# Kinds that re-emit a whole group of fields once anything in the group
# changed. The flag says whether the field is emitted even when unset.
FAN_OUT: dict[MessageKind, tuple[tuple[str, bool], ...]] = {
    MessageKind.CLEAN_REPORT: (
        ("clean_status", True),
        ("fan_speed", False),
        ("last_cleaned_area", False),
    ),
    MessageKind.NET_INFO: (
        ("network.ip", True),
        ("network.ssid", True),
    ),
    MessageKind.CLEAN_SUM: (
        ("totals.area", True),
        ("totals.seconds", True),
        ("totals.count", True),
    ),
}


class Event(NamedTuple):
    """A public event: name plus the canonical value of the field."""

    name: str
    value: Any


def events_for(kind: MessageKind, changes: Mapping[str, Any], state: DeviceState) -> list[Event]:
    """Return the events for one projected fragment.

    No changes means no events, so a repeated message is silent. Fan-out
    groups read their values from the current state, not from the diff.
    """
    if not changes:
        return []

    if kind in FAN_OUT:
        return [
            Event(FIELD_EVENTS[path], state.get(path))
            for path, always in FAN_OUT[kind]
            if always or state.get(path) is not None
        ]

    events: list[Event] = []
    for path, value in changes.items():
        if path.startswith("lifespan."):
            component = path.removeprefix("lifespan.")
            if component in KNOWN_COMPONENTS:
                events.append(Event(LIFE_SPAN_EVENT_PREFIX + component, value))
        elif path in FIELD_EVENTS:
            events.append(Event(FIELD_EVENTS[path], value))
    return events


Listener = Callable[[Any], None]


class EventEmitter:
    """Named-event listener registry.

    Listeners run synchronously in registration order. A listener that
    raises is logged and the remaining listeners still run.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, name: str, callback: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        self._listeners.setdefault(name, []).append(callback)

        def _remove() -> None:
            listeners = self._listeners.get(name, [])
            if callback in listeners:
                listeners.remove(callback)

        return _remove

    def listener_count(self, name: str) -> int:
        return len(self._listeners.get(name, []))

    def emit(self, event: Event) -> None:
        for callback in list(self._listeners.get(event.name, [])):
            try:
                callback(event.value)
            except Exception:
                _LOGGER.exception("Listener for %s failed", event.name)
