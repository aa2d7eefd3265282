from enum import Enum
from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union

from tello_errors import InvalidArgumentError, ProtocolError

# ==============================================================================
# 1. COMMAND VOCABULARY
# ==============================================================================

class Verb(str, Enum):
    """Command words exactly as the Tello SDK documents them."""
    COMMAND   = "command"
    TAKEOFF   = "takeoff"
    LAND      = "land"
    EMERGENCY = "emergency"
    STOP      = "stop"
    UP        = "up"
    DOWN      = "down"
    LEFT      = "left"
    RIGHT     = "right"
    FORWARD   = "forward"
    BACK      = "back"
    CW        = "cw"
    CCW       = "ccw"
    FLIP      = "flip"
    SPEED     = "speed"
    # Read commands
    SPEED_Q    = "speed?"
    BATTERY_Q  = "battery?"
    TIME_Q     = "time?"
    HEIGHT_Q   = "height?"
    TEMP_Q     = "temp?"
    ATTITUDE_Q = "attitude?"
    BARO_Q     = "baro?"
    TOF_Q      = "tof?"
    WIFI_Q     = "wifi?"
    SDK_Q      = "sdk?"
    SN_Q       = "sn?"

    @property
    def is_query(self) -> bool:
        return self.value.endswith("?")


class CommandFamily(Enum):
    MODE   = "mode"
    MOTION = "motion"
    QUERY  = "query"


class Direction(str, Enum):
    UP      = "up"
    DOWN    = "down"
    LEFT    = "left"
    RIGHT   = "right"
    FORWARD = "forward"
    BACK    = "back"


class FlipDirection(str, Enum):
    LEFT    = "l"
    RIGHT   = "r"
    FORWARD = "f"
    BACK    = "b"


_MODE_VERBS = frozenset({Verb.COMMAND, Verb.TAKEOFF, Verb.LAND, Verb.EMERGENCY})

# Inclusive (min, max) for the single integer argument of each verb
MOVE_RANGE_CM = (20, 500)
ROTATE_RANGE_DEG = (1, 360)
SPEED_RANGE_CM_S = (10, 100)

_INT_RANGES: Dict[Verb, Tuple[int, int]] = {
    Verb.UP: MOVE_RANGE_CM,
    Verb.DOWN: MOVE_RANGE_CM,
    Verb.LEFT: MOVE_RANGE_CM,
    Verb.RIGHT: MOVE_RANGE_CM,
    Verb.FORWARD: MOVE_RANGE_CM,
    Verb.BACK: MOVE_RANGE_CM,
    Verb.CW: ROTATE_RANGE_DEG,
    Verb.CCW: ROTATE_RANGE_DEG,
    Verb.SPEED: SPEED_RANGE_CM_S,
}

Arg = Union[int, str]


@dataclass(frozen=True)
class Command:
    verb: Verb
    args: Tuple[Arg, ...] = ()

    @property
    def family(self) -> CommandFamily:
        if self.verb.is_query:
            return CommandFamily.QUERY
        if self.verb in _MODE_VERBS:
            return CommandFamily.MODE
        return CommandFamily.MOTION

    @property
    def is_query(self) -> bool:
        return self.verb.is_query

    def __str__(self) -> str:
        return " ".join([self.verb.value, *(str(a) for a in self.args)])

    # --- constructors -------------------------------------------------------

    @classmethod
    def connect(cls) -> "Command":
        return cls(Verb.COMMAND)

    @classmethod
    def take_off(cls) -> "Command":
        return cls(Verb.TAKEOFF)

    @classmethod
    def land(cls) -> "Command":
        return cls(Verb.LAND)

    @classmethod
    def emergency(cls) -> "Command":
        return cls(Verb.EMERGENCY)

    @classmethod
    def stop(cls) -> "Command":
        return cls(Verb.STOP)

    @classmethod
    def move(cls, direction: Union[Direction, str], distance_cm: int) -> "Command":
        try:
            direction = Direction(direction)
        except ValueError:
            raise InvalidArgumentError(f"Unknown move direction {direction!r}") from None
        return cls(Verb(direction.value), (distance_cm,))

    @classmethod
    def rotate_cw(cls, degrees: int) -> "Command":
        return cls(Verb.CW, (degrees,))

    @classmethod
    def rotate_ccw(cls, degrees: int) -> "Command":
        return cls(Verb.CCW, (degrees,))

    @classmethod
    def flip(cls, direction: Union[FlipDirection, str]) -> "Command":
        try:
            direction = FlipDirection(direction)
        except ValueError:
            raise InvalidArgumentError(f"Unknown flip direction {direction!r}") from None
        return cls(Verb.FLIP, (direction.value,))

    @classmethod
    def set_speed(cls, cm_per_s: int) -> "Command":
        return cls(Verb.SPEED, (cm_per_s,))

    @classmethod
    def query(cls, verb: Verb) -> "Command":
        if not verb.is_query:
            raise InvalidArgumentError(f"'{verb.value}' is not a read command")
        return cls(verb)

# ==============================================================================
# 2. WIRE CODEC
# ==============================================================================

def validate(command: Command) -> None:
    """Raises InvalidArgumentError when any argument is outside the firmware's range."""
    verb = command.verb

    if verb in _INT_RANGES:
        if len(command.args) != 1:
            raise InvalidArgumentError(f"'{verb.value}' takes exactly one argument")
        value = command.args[0]
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidArgumentError(f"'{verb.value}' argument must be an integer, got {value!r}")
        lo, hi = _INT_RANGES[verb]
        if not lo <= value <= hi:
            raise InvalidArgumentError(f"'{verb.value}' argument {value} outside {lo}-{hi}")
        return

    if verb is Verb.FLIP:
        valid = {d.value for d in FlipDirection}
        if len(command.args) != 1 or command.args[0] not in valid:
            raise InvalidArgumentError(f"'flip' needs one of {sorted(valid)}, got {command.args!r}")
        return

    if command.args:
        raise InvalidArgumentError(f"'{verb.value}' takes no arguments")


def encode(command: Command) -> bytes:
    validate(command)
    return str(command).encode("ascii")


class ReplyKind(Enum):
    ACK   = "ok"
    ERROR = "error"
    VALUE = "value"


@dataclass(frozen=True)
class Reply:
    kind: ReplyKind
    payload: str = ""

    @property
    def is_ack(self) -> bool:
        return self.kind is ReplyKind.ACK

    @property
    def reason(self) -> str:
        return self.payload if self.kind is ReplyKind.ERROR else ""

    @classmethod
    def ack(cls) -> "Reply":
        return cls(ReplyKind.ACK)


# Whitespace plus every ASCII control byte (the firmware pads some replies with NULs)
_TRIM = "".join(chr(c) for c in range(33)) + "\x7f"


def decode(data: bytes, query: bool = False) -> Optional[Reply]:
    """
    Parses one reply datagram.
    Returns None for noise (nothing left after trimming). Raises ProtocolError
    when a non-query command gets anything other than ok/error.
    """
    text = data.decode("ascii", errors="ignore").strip(_TRIM)
    if not text:
        return None

    lowered = text.lower()
    if lowered == "ok":
        return Reply.ack()
    if lowered.startswith("error"):
        return Reply(ReplyKind.ERROR, text[5:].strip(_TRIM + ":"))
    if query:
        return Reply(ReplyKind.VALUE, text)

    raise ProtocolError(f"Unexpected reply {text!r}", raw=text)

# ==============================================================================
# 3. QUERY VALUE PARSERS
# ==============================================================================

def _strip_unit(text: str, unit: str) -> str:
    text = text.strip()
    if unit and text.lower().endswith(unit):
        text = text[: -len(unit)].strip()
    return text


def parse_int(text: str, unit: str = "") -> int:
    """'82' -> 82, parse_int('10dm', 'dm') -> 10. Accepts '15.0' style integers."""
    raw = _strip_unit(text, unit)
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        value = float(raw)
    except ValueError:
        raise ProtocolError(f"Expected an integer, got {text!r}", raw=text) from None
    if not value.is_integer():
        raise ProtocolError(f"Expected an integer, got {text!r}", raw=text)
    return int(value)


def parse_float(text: str, unit: str = "") -> float:
    try:
        return float(_strip_unit(text, unit))
    except ValueError:
        raise ProtocolError(f"Expected a number, got {text!r}", raw=text) from None


def parse_range(text: str, unit: str = "") -> Tuple[int, int]:
    """'63~65C' -> (63, 65). A single value is returned as (v, v)."""
    raw = _strip_unit(text, unit.lower())
    lo, sep, hi = raw.partition("~")
    if not sep:
        v = parse_int(lo)
        return (v, v)
    return (parse_int(lo), parse_int(hi))


def parse_fields(text: str) -> Dict[str, str]:
    """'pitch:0;roll:2;yaw:-3;' -> {'pitch': '0', 'roll': '2', 'yaw': '-3'}"""
    fields: Dict[str, str] = {}
    for part in text.strip().split(";"):
        part = part.strip()
        if not part:
            continue
        key, sep, value = part.partition(":")
        if not sep or not key:
            raise ProtocolError(f"Malformed field {part!r}", raw=text)
        fields[key.strip()] = value.strip()
    return fields
