"""Adapter between the Ecovacs transports and the canonical vacuum state."""

from __future__ import annotations

import asyncio
import logging
import re
import xml.etree.ElementTree as ET
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from .classifier import MessageKind, classify
from .const import (
    CLEAN_ACTION_TO_ECOVACS,
    CLEAN_MODE_TO_ECOVACS,
    COMPONENT_TO_ECOVACS,
    FAN_SPEED_TO_ECOVACS,
    PING_INTERVAL,
    TD_CHARGE,
    TD_CLEAN,
    TD_GET_BATTERY_INFO,
    TD_GET_CHARGE_STATE,
    TD_GET_CHARGER_POSITION,
    TD_GET_CLEAN_SPEED,
    TD_GET_CLEAN_STATE,
    TD_GET_CLEAN_SUM,
    TD_GET_DEVICE_INFO,
    TD_GET_FIRMWARE_VERSION,
    TD_GET_LIFE_SPAN,
    TD_GET_NET_INFO,
    TD_GET_POSITION,
    TD_GET_SLEEP_STATUS,
    TD_GET_WATER_BOX_INFO,
    TD_GET_WATER_LEVEL,
    TD_PLAY_SOUND,
    TD_SET_WATER_LEVEL,
    WATER_LEVEL_MAX,
    WATER_LEVEL_MIN,
    CleanStatus,
    FanSpeed,
)
from .events import Event, EventEmitter, events_for
from .models import CleanedArea, DeviceState, VacuumInfo
from .projector import AREA_PATTERN, project
from .protocol import EnvelopeCodec, Fragment, ProtocolError, build_ctl, parse_json_fragment, parse_stanza
from .session import EcovacsConnectionError, XmppSession

_LOGGER = logging.getLogger(__name__)

# Map room ids for spot area cleaning: "0" or "0,3,5"
ROOM_LIST_PATTERN = re.compile(r"[0-9]+(?:,[0-9]+)*")


class EcovacsClient:
    """Client for one Ecovacs vacuum.

    Inbound messages from either transport are classified, projected onto
    ``state`` and published as named events. Only this class replaces
    ``state``; it processes one fragment to completion before the next.

    Usage:
        client = EcovacsClient(user, hostname, resource, secret, vacuum, continent="eu")
        client.on("BatteryInfo", my_callback)
        await client.connect()
        await client.get_battery_info()
        await client.start_listening()
        # ...later...
        await client.disconnect()
    """

    def __init__(
        self,
        user: str,
        hostname: str,
        resource: str,
        secret: str,
        vacuum: VacuumInfo | Mapping[str, Any],
        continent: str = "",
        server_address: str | None = None,
        session: Any = None,
    ) -> None:
        self.vacuum = vacuum if isinstance(vacuum, VacuumInfo) else VacuumInfo.from_dict(vacuum)
        self.address = f"{user}@{hostname}/{resource}"
        self.codec = EnvelopeCodec(self.address)
        self.state = DeviceState()
        self.events = EventEmitter()
        self.on_state_update: Callable[[DeviceState], None] | None = None

        self.session = session or XmppSession(
            user, hostname, resource, secret,
            continent=continent, server_address=server_address,
        )
        self.session.on_stanza = self.handle_stanza
        self.session.on_ready = self._on_session_ready
        self._ping_task: asyncio.Task[None] | None = None

    @property
    def vacuum_address(self) -> str:
        return self.vacuum.address

    @property
    def connected(self) -> bool:
        return bool(self.session.connected)

    def on(self, name: str, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Subscribe to a public event; returns an unsubscribe callable."""
        return self.events.on(name, callback)

    # --- Inbound ---

    def handle_fragment(self, fragment: Fragment) -> list[Event]:
        """Classify, project and emit one fragment. Returns the emitted events."""
        kind = classify(fragment)
        if kind is MessageKind.UNKNOWN:
            _LOGGER.debug("Unknown response type received: %s %s", fragment.name, dict(fragment.attrs))
            return []

        projection = project(kind, fragment, self.state)
        self.state = projection.state
        if projection.changes:
            _LOGGER.debug("%s changed %s", kind.value, projection.changes)

        events = events_for(kind, projection.changes, self.state)
        for event in events:
            self.events.emit(event)

        if projection.changes and self.on_state_update:
            try:
                self.on_state_update(self.state)
            except Exception:
                _LOGGER.exception("State update callback failed")
        return events

    def handle_stanza(self, data: str | bytes) -> list[Event]:
        """Handle one stanza from the push session."""
        try:
            fragment = parse_stanza(data)
        except ProtocolError as e:
            _LOGGER.debug("Failed to parse stanza: %s", e)
            return []
        if fragment is None:
            return []
        return self.handle_fragment(fragment)

    def handle_response(self, data: str | bytes | Mapping[str, Any]) -> list[Event]:
        """Handle one JSON payload from the request/response channel."""
        try:
            fragment = parse_json_fragment(data)
        except ProtocolError as e:
            _LOGGER.debug("Failed to parse response: %s", e)
            return []
        return self.handle_fragment(fragment)

    # --- Outbound ---

    async def send_command(self, payload: ET.Element) -> None:
        """Wrap a command payload in an envelope and send it to the vacuum.

        Raises:
            EcovacsConnectionError: If not connected.
        """
        if not self.connected:
            raise EcovacsConnectionError("Not connected to vacuum")
        data = self.codec.serialize(self.codec.wrap(payload, self.vacuum_address))
        await self.session.send(data)
        _LOGGER.debug("Sent command: %s", data)

    async def send_ping(self) -> None:
        """Send the liveness envelope to the vacuum."""
        if not self.connected:
            raise EcovacsConnectionError("Not connected to vacuum")
        await self.session.send(self.codec.serialize(self.codec.ping(self.vacuum_address)))
        _LOGGER.debug("Ping sent to %s", self.vacuum_address)

    async def _ping_loop(self) -> None:
        """Ping at once, then every PING_INTERVAL seconds until disconnect().

        Outlives connection loss: ticks are skipped while the session is
        down, and a failed send is retried on the next tick.
        """
        while True:
            if self.connected:
                try:
                    await self.send_ping()
                except Exception:
                    _LOGGER.debug("Ping failed, connection may be lost")
            await asyncio.sleep(PING_INTERVAL)

    def _start_ping_timer(self) -> None:
        if self._ping_task and not self._ping_task.done():
            self._ping_task.cancel()
        self._ping_task = asyncio.create_task(self._ping_loop())

    def _on_session_ready(self) -> None:
        """Called by the session after every login, including reconnects."""
        self._start_ping_timer()

    # --- Lifecycle ---

    async def connect(self) -> None:
        """Connect the session and start the liveness timer.

        The first ping goes out as soon as the timer runs.

        Raises:
            EcovacsConnectionError: If the session cannot be established.
        """
        await self.session.connect()
        if self._ping_task is None or self._ping_task.done():
            self._start_ping_timer()

    async def start_listening(self) -> None:
        """Run the session's listener (with reconnect) until disconnect()."""
        await self.session.start_listening()

    async def disconnect(self) -> None:
        """Stop the liveness timer, close the session and drop the state."""
        if self._ping_task and not self._ping_task.done():
            self._ping_task.cancel()
            try:
                await self._ping_task
            except asyncio.CancelledError:
                pass
        self._ping_task = None
        await self.session.disconnect()
        self.state = DeviceState()
        _LOGGER.info("Disconnected from %s", self.vacuum_address)

    # --- Actions ---

    async def clean(
        self, mode: CleanStatus = CleanStatus.AUTO, speed: FanSpeed = FanSpeed.NORMAL
    ) -> None:
        """Start cleaning in the given mode.

        Area modes need their target; use spot_area() or custom_area().
        """
        if mode in (CleanStatus.SPOT_AREA, CleanStatus.CUSTOM_AREA):
            raise ValueError(f"Clean mode {mode!r} needs an area; use spot_area() or custom_area()")
        await self._send_clean(mode, speed, "start")

    async def spot_area(
        self, area: str | Sequence[int], cleanings: int = 1, speed: FanSpeed = FanSpeed.NORMAL
    ) -> None:
        """Clean the given map rooms ('0,3' or [0, 3]) ``cleanings`` times."""
        if not isinstance(area, str):
            area = ",".join(str(room) for room in area)
        if not ROOM_LIST_PATTERN.fullmatch(area):
            raise ValueError(f"Invalid spot area: {area!r}")
        await self._send_clean(
            CleanStatus.SPOT_AREA, speed, "start", {"mid": area, "deep": _cleanings(cleanings)}
        )

    async def custom_area(
        self, map_position: str | CleanedArea, cleanings: int = 1, speed: FanSpeed = FanSpeed.NORMAL
    ) -> None:
        """Clean the rectangle 'x1,y1,x2,y2' (map coordinates) ``cleanings`` times."""
        position = str(map_position)
        if not AREA_PATTERN.fullmatch(position):
            raise ValueError(f"Invalid map position: {position!r}")
        await self._send_clean(
            CleanStatus.CUSTOM_AREA, speed, "start", {"p": position, "deep": _cleanings(cleanings)}
        )

    async def stop(self) -> None:
        await self._send_clean(CleanStatus.STOP, FanSpeed.NORMAL, "stop")

    async def pause(self) -> None:
        await self._send_clean(CleanStatus.AUTO, FanSpeed.NORMAL, "pause")

    async def resume(self) -> None:
        await self._send_clean(CleanStatus.AUTO, FanSpeed.NORMAL, "resume")

    async def charge(self) -> None:
        """Return to the charging dock."""
        await self.send_command(build_ctl(TD_CHARGE, child=ET.Element("charge", {"type": "go"})))

    async def play_sound(self, sid: int = 0) -> None:
        await self.send_command(build_ctl(TD_PLAY_SOUND, {"sid": str(sid)}))

    async def set_water_level(self, level: int) -> None:
        """Set the mopping water flow (1 = low ... 4 = ultrahigh)."""
        if not WATER_LEVEL_MIN <= level <= WATER_LEVEL_MAX:
            raise ValueError(f"Water level must be {WATER_LEVEL_MIN}-{WATER_LEVEL_MAX}, got {level}")
        await self.send_command(build_ctl(TD_SET_WATER_LEVEL, {"v": str(level)}))

    async def _send_clean(
        self,
        mode: CleanStatus,
        speed: FanSpeed,
        action: str,
        extra: Mapping[str, str] | None = None,
    ) -> None:
        if mode not in CLEAN_MODE_TO_ECOVACS:
            raise ValueError(f"Cannot start clean mode {mode!r}")
        clean = ET.Element("clean", {
            "type": CLEAN_MODE_TO_ECOVACS[mode],
            "speed": FAN_SPEED_TO_ECOVACS[speed],
            "act": CLEAN_ACTION_TO_ECOVACS[action],
            **(extra or {}),
        })
        await self.send_command(build_ctl(TD_CLEAN, child=clean))

    # --- Queries ---

    async def get_clean_state(self) -> None:
        await self.send_command(build_ctl(TD_GET_CLEAN_STATE))

    async def get_clean_speed(self) -> None:
        """Query the fan speed; the answer updates ``fan_speed``."""
        await self.send_command(build_ctl(TD_GET_CLEAN_SPEED))

    async def get_charge_state(self) -> None:
        await self.send_command(build_ctl(TD_GET_CHARGE_STATE))

    async def get_battery_info(self) -> None:
        await self.send_command(build_ctl(TD_GET_BATTERY_INFO))

    async def get_life_span(self, component: str) -> None:
        """Query one consumable ('main_brush', 'side_brush', 'filter')."""
        if component not in COMPONENT_TO_ECOVACS:
            raise ValueError(f"Unknown component: {component}")
        await self.send_command(build_ctl(TD_GET_LIFE_SPAN, {"type": COMPONENT_TO_ECOVACS[component]}))

    async def get_water_level(self) -> None:
        await self.send_command(build_ctl(TD_GET_WATER_LEVEL))

    async def get_water_box_info(self) -> None:
        await self.send_command(build_ctl(TD_GET_WATER_BOX_INFO))

    async def get_net_info(self) -> None:
        await self.send_command(build_ctl(TD_GET_NET_INFO))

    async def get_position(self) -> None:
        await self.send_command(build_ctl(TD_GET_POSITION))

    async def get_charger_position(self) -> None:
        await self.send_command(build_ctl(TD_GET_CHARGER_POSITION))

    async def get_sleep_status(self) -> None:
        await self.send_command(build_ctl(TD_GET_SLEEP_STATUS))

    async def get_clean_sum(self) -> None:
        await self.send_command(build_ctl(TD_GET_CLEAN_SUM))

    async def get_firmware_version(self) -> None:
        """Query the firmware version. The answer is logged, not tracked in state."""
        await self.send_command(build_ctl(TD_GET_FIRMWARE_VERSION, {"name": "FW"}))

    async def get_device_info(self) -> None:
        """Query the device info. The answer is logged, not tracked in state."""
        await self.send_command(build_ctl(TD_GET_DEVICE_INFO))


def _cleanings(count: int) -> str:
    if count < 1:
        raise ValueError(f"Cleanings must be at least 1, got {count}")
    return str(count)
