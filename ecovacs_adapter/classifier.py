"""Infer the message kind of an inbound fragment.

The vendor sends no reliable type field. Kinds are inferred from which
attributes are present, and several attribute sets overlap (``a`` is used
by both pose reports and cleaning totals, ``p``+``a`` by both robot and
charger poses). ``RULES`` is evaluated top to bottom and the first rule
returning a kind wins, so the order below is part of the protocol.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from .const import (
    CHARGER_POSITION_ID,
    COMPONENT_FROM_ECOVACS,
    SLEEP_STATUS_ID,
    WATER_LEVEL_MAX,
    WATER_LEVEL_MIN,
)
from .protocol import Fragment

_LOGGER = logging.getLogger(__name__)


class MessageKind(str, Enum):
    """Canonical message kinds."""

    CHARGE_STATE = "ChargeState"
    BATTERY_INFO = "BatteryInfo"
    CLEAN_REPORT = "CleanReport"
    ERROR = "Error"
    LIFE_SPAN = "LifeSpan"
    WATER_LEVEL = "WaterLevel"
    WATER_BOX_INFO = "WaterBoxInfo"
    DUST_CASE_INFO = "DustCaseInfo"
    DEEBOT_POSITION = "DeebotPosition"
    CHARGE_POSITION = "ChargePosition"
    NET_INFO = "NetInfo"
    SLEEP_STATUS = "SleepStatus"
    CLEAN_SUM = "CleanSum"
    UNKNOWN = "Unknown"


# Normalized vendor type token -> kind. Covers push tokens (td="CleanReport"),
# query names (GetCleanState) and the child element names of query results.
TOKEN_KINDS: dict[str, MessageKind] = {
    "chargestate": MessageKind.CHARGE_STATE,
    "charge": MessageKind.CHARGE_STATE,
    "batteryinfo": MessageKind.BATTERY_INFO,
    "battery": MessageKind.BATTERY_INFO,
    "cleanreport": MessageKind.CLEAN_REPORT,
    "cleanreportserver": MessageKind.CLEAN_REPORT,
    "cleanstate": MessageKind.CLEAN_REPORT,
    "cleanspeed": MessageKind.CLEAN_REPORT,
    "clean": MessageKind.CLEAN_REPORT,
    "error": MessageKind.ERROR,
    "lifespan": MessageKind.LIFE_SPAN,
    "waterlevel": MessageKind.WATER_LEVEL,
    "waterpermeability": MessageKind.WATER_LEVEL,
    "waterboxinfo": MessageKind.WATER_BOX_INFO,
    "dustcasest": MessageKind.DUST_CASE_INFO,
    "deebotposition": MessageKind.DEEBOT_POSITION,
    "deebotpos": MessageKind.DEEBOT_POSITION,
    "pos": MessageKind.DEEBOT_POSITION,
    "chargeposition": MessageKind.CHARGE_POSITION,
    "chargerpos": MessageKind.CHARGE_POSITION,
    "chargerposition": MessageKind.CHARGE_POSITION,
    "netinfo": MessageKind.NET_INFO,
    "sleepstatus": MessageKind.SLEEP_STATUS,
    "cleansum": MessageKind.CLEAN_SUM,
}


def kind_for_token(token: str) -> MessageKind | None:
    """Map a vendor type token to a kind ('GetCleanSum' -> CLEAN_SUM)."""
    normalized = token.strip().lower().strip("_").removeprefix("get")
    return TOKEN_KINDS.get(normalized)


# --- Rules, in priority order ---


def _by_type_token(fragment: Fragment) -> MessageKind | None:
    token = fragment.attrs.get("td")
    if isinstance(token, str) and token:
        return kind_for_token(token)
    return None


def _by_child_name(fragment: Fragment) -> MessageKind | None:
    if fragment.child is not None and fragment.child.name:
        return kind_for_token(fragment.child.name)
    return None


def _by_component_type(fragment: Fragment) -> MessageKind | None:
    component = fragment.attrs.get("type")
    if isinstance(component, str) and component.strip() in COMPONENT_FROM_ECOVACS:
        return MessageKind.LIFE_SPAN
    return None


def _by_water_level(fragment: Fragment) -> MessageKind | None:
    if "v" not in fragment.attrs:
        return None
    try:
        level = int(float(fragment.attrs["v"]))  # "2.0" is level 2
    except (ValueError, TypeError, OverflowError):
        return None
    return MessageKind.WATER_LEVEL if WATER_LEVEL_MIN <= level <= WATER_LEVEL_MAX else None


def _by_water_box(fragment: Fragment) -> MessageKind | None:
    return MessageKind.WATER_BOX_INFO if fragment.attrs.get("on") else None


def _by_position(fragment: Fragment) -> MessageKind | None:
    if "p" in fragment.attrs and "a" in fragment.attrs:
        if fragment.attrs.get("id") == CHARGER_POSITION_ID:
            return MessageKind.CHARGE_POSITION
        return MessageKind.DEEBOT_POSITION
    return None


def _by_sleep_status(fragment: Fragment) -> MessageKind | None:
    if "st" in fragment.attrs and fragment.attrs.get("id") == SLEEP_STATUS_ID:
        return MessageKind.SLEEP_STATUS
    return None


def _by_clean_sum(fragment: Fragment) -> MessageKind | None:
    if all(key in fragment.attrs for key in ("a", "l", "c")):
        return MessageKind.CLEAN_SUM
    return None


RULES: tuple[Callable[[Fragment], MessageKind | None], ...] = (
    _by_type_token,
    _by_child_name,
    _by_component_type,
    _by_water_level,
    _by_water_box,
    _by_position,
    _by_sleep_status,
    _by_clean_sum,
)


def classify(fragment: Fragment) -> MessageKind:
    """Return the kind of a fragment, or UNKNOWN when no rule matches.

    Fragments from a transport error envelope are always ERROR.
    """
    if fragment.is_error:
        return MessageKind.ERROR

    for rule in RULES:
        kind = rule(fragment)
        if kind is not None:
            return kind

    _LOGGER.debug("Unclassifiable fragment %s: %s", fragment.name, dict(fragment.attrs))
    return MessageKind.UNKNOWN
