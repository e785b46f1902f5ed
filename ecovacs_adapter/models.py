"""Data models for Ecovacs vacuum state."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any

from .const import VACUUM_DOMAIN_TEMPLATE, VACUUM_RESOURCE, ChargeStatus, CleanStatus, FanSpeed


@dataclass(frozen=True)
class VacuumInfo:
    """Device record from the vendor's device list."""

    did: str = ""
    device_class: str = ""
    name: str = ""
    company: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> VacuumInfo:
        return cls(
            did=str(data.get("did", "")),
            device_class=str(data.get("class", "")),
            name=str(data.get("nick") or data.get("name") or ""),
            company=str(data.get("company", "")),
        )

    @property
    def address(self) -> str:
        """XMPP address of the robot: '{did}@{class}.ecorobot.net/atom'."""
        domain = VACUUM_DOMAIN_TEMPLATE.format(device_class=self.device_class)
        return f"{self.did}@{domain}/{VACUUM_RESOURCE}"


@dataclass(frozen=True)
class Pose:
    """Position report. Values are passed through as the firmware sent them."""

    x: Any = None
    y: Any = None
    angle: Any = None

    def __str__(self) -> str:
        return f"{self.x},{self.y},{self.angle}"


@dataclass(frozen=True)
class CleanedArea:
    """Rectangle of the last cleaned area, each corner rounded to 0.1."""

    x1: float
    y1: float
    x2: float
    y2: float

    def __str__(self) -> str:
        return f"{self.x1:.1f},{self.y1:.1f},{self.x2:.1f},{self.y2:.1f}"


@dataclass(frozen=True)
class NetworkInfo:
    ip: str | None = None
    ssid: str | None = None


@dataclass(frozen=True)
class CleaningTotals:
    """Lifetime totals. The firmware always reports all three together."""

    area: int  # m²
    seconds: int
    count: int


# Compound fields and the sub-attributes they diff on
_COMPOUND_FIELDS: dict[str, tuple[str, ...]] = {
    "network": ("ip", "ssid"),
    "totals": ("area", "seconds", "count"),
}


@dataclass(frozen=True)
class DeviceState:
    """Canonical state of one vacuum.

    Never mutated in place: projections build a new instance with
    dataclasses.replace(), and the client swaps its reference.
    """

    # Cleaning (all three from CleanReport)
    clean_status: CleanStatus | None = None
    fan_speed: FanSpeed | None = None
    last_cleaned_area: CleanedArea | None = None

    # Power
    charge_status: ChargeStatus | None = None
    battery_level: float | None = None  # 0-100

    # Accessories
    water_level: int | None = None
    water_box_present: bool | None = None
    dust_case_present: bool | None = None
    sleep_status: bool | None = None

    # Positions
    pose: Pose | None = None
    charger_pose: Pose | None = None

    # Consumables: component name -> percent remaining
    lifespans: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))

    network: NetworkInfo = field(default_factory=NetworkInfo)
    totals: CleaningTotals | None = None

    # "" means no error; None means never reported
    last_error: str | None = None

    def get(self, path: str) -> Any:
        """Read a field by diff path ('battery_level', 'network.ip', 'lifespan.filter')."""
        head, _, tail = path.partition(".")
        if head == "lifespan":
            return self.lifespans.get(tail)
        value = getattr(self, head)
        if tail:
            return getattr(value, tail) if value is not None else None
        return value

    def changes_from(self, prior: DeviceState) -> dict[str, Any]:
        """Return {path: new value} for every field that differs from prior."""
        changes: dict[str, Any] = {}
        for f in fields(self):
            name = f.name
            new, old = getattr(self, name), getattr(prior, name)
            if name == "lifespans":
                for component, percent in new.items():
                    if old.get(component) != percent:
                        changes[f"lifespan.{component}"] = percent
            elif name in _COMPOUND_FIELDS:
                for sub in _COMPOUND_FIELDS[name]:
                    new_sub = getattr(new, sub) if new is not None else None
                    old_sub = getattr(old, sub) if old is not None else None
                    if new_sub != old_sub:
                        changes[f"{name}.{sub}"] = new_sub
            elif new != old:
                changes[name] = new
        return changes
