"""Project classified fragments onto the canonical device state.

Each projector is a pure function ``(fragment, state) -> state``. They
never mutate their input; ``project()`` diffs the result against the prior
state. The firmware omits attributes intermittently, so a missing or
malformed attribute is logged and leaves the field as it was.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from .classifier import MessageKind
from .const import (
    CHARGE_MODE_FROM_ECOVACS,
    CLEAN_ACTION_FROM_ECOVACS,
    CLEAN_MODE_FROM_ECOVACS,
    COMPONENT_FROM_ECOVACS,
    ERROR_CODES,
    FAN_SPEED_FROM_ECOVACS,
    NO_ERROR_CODE,
    CleanStatus,
)
from .models import CleanedArea, CleaningTotals, DeviceState, Pose
from .protocol import Fragment

_LOGGER = logging.getLogger(__name__)

# Four comma-separated signed decimals: "-1.5,2,300.25,-4."
AREA_PATTERN = re.compile(r"-?[0-9]+\.?[0-9]*(?:,-?[0-9]+\.?[0-9]*){3}")

# Action codes that override the mode reported in the same fragment
_TERMINAL_ACTIONS = {"stop": CleanStatus.STOP, "pause": CleanStatus.PAUSE}


@dataclass(frozen=True)
class Projection:
    """Result of projecting one fragment."""

    state: DeviceState
    changes: dict[str, Any] = field(default_factory=dict)


def _payload(fragment: Fragment) -> Fragment:
    """Return the nested element for kinds that wrap their data one level down."""
    return fragment.child if fragment.child is not None else fragment


def _to_int(value: Any) -> int:
    """Lenient integer parse: '099' -> 99, '12.5' -> 12."""
    return int(float(value))


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("1", "true", "on", "yes"):
            return True
        if text in ("0", "false", "off", "no", ""):
            return False
        raise ValueError(f"Not a boolean flag: {value!r}")
    return bool(value)


def _parse_pose(attrs: Mapping[str, Any]) -> Pose | None:
    """'p' is 'x,y' split on the first comma; 'a' is the angle, passed through."""
    raw = attrs.get("p")
    if "a" not in attrs or not isinstance(raw, str) or "," not in raw:
        return None
    x, _, y = raw.partition(",")
    return Pose(x=x, y=y, angle=attrs["a"])


def _parse_area(raw: Any) -> CleanedArea | None:
    if not isinstance(raw, str) or not AREA_PATTERN.fullmatch(raw):
        return None
    x1, y1, x2, y2 = (round(float(v), 1) for v in raw.split(","))
    return CleanedArea(x1, y1, x2, y2)


def _life_span_percent(attrs: Mapping[str, Any]) -> float | None:
    """Percent remaining, from whichever attribute pair the model reports.

    Some models (e.g. D901) report only 'left' as remaining minutes of a
    fixed 60; that last branch keeps the vendor arithmetic as is.
    """
    if "val" in attrs and "total" in attrs:
        return _to_int(attrs["val"]) / _to_int(attrs["total"]) * 100
    if "val" in attrs:
        return _to_int(attrs["val"]) / 100
    if "left" in attrs and "total" in attrs:
        return _to_int(attrs["left"]) / _to_int(attrs["total"]) * 100
    if "left" in attrs:
        return _to_int(attrs["left"]) / 60
    return None


# --- Projectors ---


def project_charge_state(fragment: Fragment, state: DeviceState) -> DeviceState:
    mode = _payload(fragment).attrs.get("type")
    if not mode:
        _LOGGER.debug("Charge state without type: %s", dict(fragment.attrs))
        return state
    charge_status = CHARGE_MODE_FROM_ECOVACS.get(mode)
    if charge_status is None:
        _LOGGER.warning("Unknown charging status '%s'", mode)
        return state
    return replace(state, charge_status=charge_status)


def project_battery_info(fragment: Fragment, state: DeviceState) -> DeviceState:
    """Battery comes as ctl.battery.power (JSON) or a flat power attribute (XML)."""
    attrs = _payload(fragment).attrs
    ctl = attrs.get("ctl")
    if isinstance(ctl, Mapping):
        value = ctl["battery"]["power"]
    elif "power" in attrs:
        value = attrs["power"]
    else:
        _LOGGER.debug("Battery info without power: %s", dict(attrs))
        return state
    return replace(state, battery_level=float(value))


def project_clean_report(fragment: Fragment, state: DeviceState) -> DeviceState:
    """Status, fan speed and last cleaned area, all from one element.

    A stop/pause action code wins over the mode code; other actions
    (start, resume) leave the mode in charge.
    """
    attrs = _payload(fragment).attrs
    updates: dict[str, Any] = {}

    status = CLEAN_MODE_FROM_ECOVACS.get(attrs.get("type", ""))
    action_code = attrs.get("st") or attrs.get("act")
    if action_code:
        action = CLEAN_ACTION_FROM_ECOVACS.get(action_code)
        status = _TERMINAL_ACTIONS.get(action, status)
    if status is not None:
        updates["clean_status"] = status
    else:
        _LOGGER.debug("Unknown clean mode: type=%r action=%r", attrs.get("type"), action_code)

    if "p" in attrs:
        area = _parse_area(attrs["p"])
        if area is not None:
            updates["last_cleaned_area"] = area
        else:
            _LOGGER.debug("Invalid last area values: %r", attrs["p"])

    if "speed" in attrs:
        fan_speed = FAN_SPEED_FROM_ECOVACS.get(attrs["speed"])
        if fan_speed is not None:
            updates["fan_speed"] = fan_speed
        else:
            _LOGGER.debug("Unknown fan speed: %r", attrs["speed"])

    return replace(state, **updates)


def project_error(fragment: Fragment, state: DeviceState) -> DeviceState:
    """Resolve the error code from code, errno, new, error, errs (first non-empty).

    An empty 'new' is the firmware saying the previous error cleared,
    unless 'old' is empty too.
    """
    attrs = fragment.attrs
    code = attrs.get("code") or attrs.get("errno")
    if not code and "new" in attrs:
        code = attrs["new"]
        if code == "" and attrs.get("old") != "":
            return replace(state, last_error="")
    if not code:
        code = attrs.get("error") or attrs.get("errs")
    if not code:
        _LOGGER.debug("Error report without code: %s", dict(attrs))
        return state

    code = str(code)
    if code == NO_ERROR_CODE:
        return replace(state, last_error="")
    return replace(state, last_error=ERROR_CODES.get(code, f"unknown error code: {code}"))


def project_life_span(fragment: Fragment, state: DeviceState) -> DeviceState:
    raw_type = fragment.attrs.get("type")
    if not isinstance(raw_type, str) or not raw_type.strip():
        _LOGGER.debug("Life span without component type: %s", dict(fragment.attrs))
        return state

    # Deebot M88 pads the code ('DustCaseHeap ')
    code = raw_type.strip()
    component = COMPONENT_FROM_ECOVACS.get(code)
    if component is None:
        _LOGGER.warning("Unknown component type '%s'", code)
        component = code

    percent = _life_span_percent(fragment.attrs)
    if percent is None:
        _LOGGER.debug("Life span for %s without val/left: %s", component, dict(fragment.attrs))
        return state
    _LOGGER.debug("Life span %s: %s", component, percent)
    return replace(state, lifespans=MappingProxyType({**state.lifespans, component: percent}))


def project_water_level(fragment: Fragment, state: DeviceState) -> DeviceState:
    if "v" not in fragment.attrs:
        return state
    return replace(state, water_level=_to_int(fragment.attrs["v"]))


def project_water_box_info(fragment: Fragment, state: DeviceState) -> DeviceState:
    if "on" not in fragment.attrs:
        return state
    return replace(state, water_box_present=_to_bool(fragment.attrs["on"]))


def project_dust_case_info(fragment: Fragment, state: DeviceState) -> DeviceState:
    if "st" not in fragment.attrs:
        return state
    return replace(state, dust_case_present=_to_bool(fragment.attrs["st"]))


def project_sleep_status(fragment: Fragment, state: DeviceState) -> DeviceState:
    if "st" not in fragment.attrs:
        return state
    return replace(state, sleep_status=_to_bool(fragment.attrs["st"]))


def project_deebot_position(fragment: Fragment, state: DeviceState) -> DeviceState:
    pose = _parse_pose(fragment.attrs)
    if pose is None:
        _LOGGER.debug("Invalid position: %s", dict(fragment.attrs))
        return state
    return replace(state, pose=pose)


def project_charge_position(fragment: Fragment, state: DeviceState) -> DeviceState:
    pose = _parse_pose(fragment.attrs)
    if pose is None:
        _LOGGER.debug("Invalid charger position: %s", dict(fragment.attrs))
        return state
    return replace(state, charger_pose=pose)


def project_net_info(fragment: Fragment, state: DeviceState) -> DeviceState:
    network = state.network
    if "wi" in fragment.attrs:
        network = replace(network, ip=str(fragment.attrs["wi"]))
    if "s" in fragment.attrs:
        network = replace(network, ssid=str(fragment.attrs["s"]))
    return replace(state, network=network)


def project_clean_sum(fragment: Fragment, state: DeviceState) -> DeviceState:
    attrs = fragment.attrs
    if not all(key in attrs for key in ("a", "l", "c")):
        _LOGGER.debug("Incomplete clean sum: %s", dict(attrs))
        return state
    totals = CleaningTotals(
        area=_to_int(attrs["a"]),
        seconds=_to_int(attrs["l"]),
        count=_to_int(attrs["c"]),
    )
    return replace(state, totals=totals)


PROJECTORS: dict[MessageKind, Callable[[Fragment, DeviceState], DeviceState]] = {
    MessageKind.CHARGE_STATE: project_charge_state,
    MessageKind.BATTERY_INFO: project_battery_info,
    MessageKind.CLEAN_REPORT: project_clean_report,
    MessageKind.ERROR: project_error,
    MessageKind.LIFE_SPAN: project_life_span,
    MessageKind.WATER_LEVEL: project_water_level,
    MessageKind.WATER_BOX_INFO: project_water_box_info,
    MessageKind.DUST_CASE_INFO: project_dust_case_info,
    MessageKind.DEEBOT_POSITION: project_deebot_position,
    MessageKind.CHARGE_POSITION: project_charge_position,
    MessageKind.NET_INFO: project_net_info,
    MessageKind.SLEEP_STATUS: project_sleep_status,
    MessageKind.CLEAN_SUM: project_clean_sum,
}


def project(kind: MessageKind, fragment: Fragment, state: DeviceState) -> Projection:
    """Apply the projector for ``kind`` and diff the result.

    Never raises: a fragment that cannot be projected returns the prior
    state with no changes.
    """
    projector = PROJECTORS.get(kind)
    if projector is None:
        return Projection(state)

    try:
        new_state = projector(fragment, state)
    except (ValueError, TypeError, KeyError, AttributeError, ZeroDivisionError, OverflowError) as e:
        _LOGGER.warning("Could not project %s fragment %s: %s", kind.value, dict(fragment.attrs), e)
        return Projection(state)

    return Projection(new_state, new_state.changes_from(state))
