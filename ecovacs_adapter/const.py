"""Protocol constants, enums, and vendor lookup tables for Ecovacs vacuums."""

from enum import Enum

# Connection defaults
DEFAULT_PORT = 5223
SERVER_ADDRESS_TEMPLATE = "msg-{continent}.ecouser.net"
WEBSOCKET_URL_TEMPLATE = "wss://{address}:{port}/"

# Addressing
VACUUM_DOMAIN_TEMPLATE = "{device_class}.ecorobot.net"
VACUUM_RESOURCE = "atom"

# XMPP namespaces
NS_CTL = "com:ctl"
NS_PING = "urn:xmpp:ping"
NS_FRAMING = "urn:ietf:params:xml:ns:xmpp-framing"
NS_SASL = "urn:ietf:params:xml:ns:xmpp-sasl"
NS_BIND = "urn:ietf:params:xml:ns:xmpp-bind"
NS_SESSION = "urn:ietf:params:xml:ns:xmpp-session"

# Magic ids the firmware puts on otherwise ambiguous fragments
CHARGER_POSITION_ID = "999999999"
SLEEP_STATUS_ID = "999999997"

# Error code the firmware reports while the robot is operational
NO_ERROR_CODE = "100"

# --- Command tokens (client → robot, td attribute) ---
# Actions
TD_CLEAN = "Clean"
TD_CHARGE = "Charge"
TD_PLAY_SOUND = "PlaySound"
TD_SET_WATER_LEVEL = "SetWaterPermeability"

# Queries; answers arrive as ordinary inbound fragments
TD_GET_CLEAN_STATE = "GetCleanState"
TD_GET_CLEAN_SPEED = "GetCleanSpeed"
TD_GET_CHARGE_STATE = "GetChargeState"
TD_GET_BATTERY_INFO = "GetBatteryInfo"
TD_GET_LIFE_SPAN = "GetLifeSpan"
TD_GET_WATER_LEVEL = "GetWaterPermeability"
TD_GET_WATER_BOX_INFO = "GetWaterBoxInfo"
TD_GET_NET_INFO = "GetNetInfo"
TD_GET_POSITION = "GetPos"
TD_GET_CHARGER_POSITION = "GetChargerPos"
TD_GET_SLEEP_STATUS = "GetSleepStatus"
TD_GET_CLEAN_SUM = "GetCleanSum"
TD_GET_FIRMWARE_VERSION = "GetVersion"
TD_GET_DEVICE_INFO = "GetDeviceInfo"

# Mopping water flow levels
WATER_LEVEL_MIN = 1
WATER_LEVEL_MAX = 4

# Liveness ping interval
PING_INTERVAL = 30.0  # seconds

# Reconnection parameters
RECONNECT_INITIAL_DELAY = 1.0  # seconds
RECONNECT_MAX_DELAY = 300.0  # 5 minutes
RECONNECT_BACKOFF_FACTOR = 2.0

# Login timeout for each step of the stream negotiation
LOGIN_STEP_TIMEOUT = 10.0  # seconds


class CleanStatus(str, Enum):
    """Canonical cleaning status."""

    AUTO = "auto"
    EDGE = "edge"
    SPOT = "spot"
    SPOT_AREA = "spot_area"
    CUSTOM_AREA = "custom_area"
    SINGLE_ROOM = "single_room"
    RETURNING = "returning"
    IDLE = "idle"
    STOP = "stop"
    PAUSE = "pause"


class FanSpeed(str, Enum):
    """Canonical suction level."""

    NORMAL = "normal"
    HIGH = "high"


class ChargeStatus(str, Enum):
    """Canonical charging state."""

    RETURNING = "returning"
    CHARGING = "charging"
    IDLE = "idle"


# --- Vendor code tables (inbound) ---

CLEAN_MODE_FROM_ECOVACS: dict[str, CleanStatus] = {
    "auto": CleanStatus.AUTO,
    "border": CleanStatus.EDGE,
    "spot": CleanStatus.SPOT,
    "SpotArea": CleanStatus.SPOT_AREA,
    "CustomArea": CleanStatus.CUSTOM_AREA,
    "singleroom": CleanStatus.SINGLE_ROOM,
    "stop": CleanStatus.IDLE,
    "going": CleanStatus.RETURNING,
}

# Action codes: s=start, p=pause, r=resume, h=halt
CLEAN_ACTION_FROM_ECOVACS: dict[str, str] = {
    "s": "start",
    "p": "pause",
    "r": "resume",
    "h": "stop",
}

FAN_SPEED_FROM_ECOVACS: dict[str, FanSpeed] = {
    "standard": FanSpeed.NORMAL,
    "strong": FanSpeed.HIGH,
}

CHARGE_MODE_FROM_ECOVACS: dict[str, ChargeStatus] = {
    "going": ChargeStatus.RETURNING,
    "SlotCharging": ChargeStatus.CHARGING,
    "WireCharging": ChargeStatus.CHARGING,
    "Idle": ChargeStatus.IDLE,
}

COMPONENT_FROM_ECOVACS: dict[str, str] = {
    "Brush": "main_brush",
    "SideBrush": "side_brush",
    "DustCaseHeap": "filter",
}

# Component names that get a LifeSpan_<name> event
KNOWN_COMPONENTS = frozenset(COMPONENT_FROM_ECOVACS.values())

# --- Vendor code tables (outbound) ---

CLEAN_MODE_TO_ECOVACS: dict[CleanStatus, str] = {
    CleanStatus.AUTO: "auto",
    CleanStatus.EDGE: "border",
    CleanStatus.SPOT: "spot",
    CleanStatus.SPOT_AREA: "SpotArea",
    CleanStatus.CUSTOM_AREA: "CustomArea",
    CleanStatus.SINGLE_ROOM: "singleroom",
    CleanStatus.STOP: "stop",
}

CLEAN_ACTION_TO_ECOVACS: dict[str, str] = {v: k for k, v in CLEAN_ACTION_FROM_ECOVACS.items()}

FAN_SPEED_TO_ECOVACS: dict[FanSpeed, str] = {v: k for k, v in FAN_SPEED_FROM_ECOVACS.items()}

COMPONENT_TO_ECOVACS: dict[str, str] = {v: k for k, v in COMPONENT_FROM_ECOVACS.items()}

# Numeric error code -> description
ERROR_CODES: dict[str, str] = {
    "100": "NoError: Robot is operational",
    "101": "BatteryLow: Low battery",
    "102": "HostHang: Robot is off the floor",
    "103": "WheelAbnormal: Driving Wheel malfunction",
    "104": "DownSensorAbnormal: Excess dust on the Anti-Drop Sensors",
    "105": "Stuck: Robot is stuck",
    "106": "SideBrushExhausted: Side Brushes have expired",
    "107": "DustCaseHeapExhausted: Dust case filter expired",
    "108": "SideAbnormal: Side Brushes are tangled",
    "109": "RollAbnormal: Main Brush is tangled",
    "110": "NoDustBox: Dust Bin Not installed",
    "111": "BumpAbnormal: Bump sensor stuck",
    "112": "LDS: LDS malfunction",
    "113": "MainBrushExhausted: Main brush has expired",
    "114": "DustCaseFilled: Dust bin full",
    "115": "BatteryError: Battery error",
    "116": "ForwardLookingError: Front sensor error",
    "117": "GyroscopeError: Gyroscope error",
    "118": "StrainerBlock: Strainer blocked",
    "119": "FanError: Fan error",
    "120": "WaterBoxError: Water box error",
    "201": "AirFilterUninstall: Air filter not installed",
    "202": "UltrasonicComponentAbnormal: Ultrasonic sensor error",
    "203": "SmallWheelError: Small wheel error",
    "204": "WheelHang: Wheel suspended",
    "205": "IonSterilizeExhausted: Sterilizer expired",
    "206": "IonSterilizeAbnormal: Sterilizer error",
    "207": "IonSterilizeFault: Sterilizer fault",
    "312": "DustBagFull: Please replace the dust bag",
    "404": "Recipient unavailable",
    "500": "Request Timeout",
    "601": "ClosedAIVISideAbnormal: Side brush error (camera off)",
    "602": "ClosedAIVIRollAbnormal: Main brush error (camera off)",
}
