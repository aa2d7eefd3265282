import asyncio
import collections
import logging
import threading
import time
from dataclasses import dataclass, field, fields
from typing import Callable, Deque, Dict, Optional, Tuple, cast

import pandas as pd

from tello_errors import ProtocolError, TransportError
from tello_protocol import parse_fields

logger = logging.getLogger(__name__)

# ==============================================================================
# 1. STATE MESSAGE
# ==============================================================================

@dataclass(frozen=True)
class Vector3:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


def _cm_to_mm(raw: str) -> int:
    return int(raw) * 10


# State-string key -> (attribute, converter)
_SCALAR_KEYS: Dict[str, Tuple[str, Callable[[str], object]]] = {
    "pitch": ("pitch", int),
    "roll": ("roll", int),
    "yaw": ("yaw", int),
    "h": ("height", int),
    "baro": ("barometer", float),
    "bat": ("battery", int),
    "tof": ("tof_distance", _cm_to_mm),  # broadcast in cm, kept in mm like tof?
    "time": ("motor_time", int),
    "templ": ("temperature_low", int),
    "temph": ("temperature_high", int),
}
_VECTOR_KEYS = {
    "vgx": ("velocity", "x"), "vgy": ("velocity", "y"), "vgz": ("velocity", "z"),
    "agx": ("acceleration", "x"), "agy": ("acceleration", "y"), "agz": ("acceleration", "z"),
}


@dataclass(frozen=True)
class Telemetry:
    """
    One state broadcast from the drone, e.g.
    "mid:-1;x:-100;y:-100;z:-100;mpry:-1,-1,-1;pitch:0;roll:0;yaw:-3;vgx:0;vgy:0;vgz:1;
     templ:58;temph:60;tof:71;h:50;bat:82;baro:-57.14;time:14;agx:17.00;agy:-4.00;agz:-956.00;"
    Units are the firmware's (degrees, cm, cm/s, 0.001g, seconds, Celsius),
    except tof_distance, which is in mm to match the tof? query.
    """
    pitch: int = 0
    roll: int = 0
    yaw: int = 0
    height: int = 0
    barometer: float = 0.0
    battery: int = 0
    tof_distance: int = 0
    motor_time: int = 0
    temperature_low: int = 0
    temperature_high: int = 0
    velocity: Vector3 = field(default_factory=Vector3)
    acceleration: Vector3 = field(default_factory=Vector3)

    @classmethod
    def from_message(cls, message: str) -> "Telemetry":
        """Unknown keys are ignored; a value that does not convert raises ProtocolError."""
        values: Dict[str, object] = {}
        vectors: Dict[str, Dict[str, float]] = {"velocity": {}, "acceleration": {}}

        for key, raw in parse_fields(message).items():
            try:
                if key in _SCALAR_KEYS:
                    attr, conv = _SCALAR_KEYS[key]
                    values[attr] = conv(raw)
                elif key in _VECTOR_KEYS:
                    vec, axis = _VECTOR_KEYS[key]
                    vectors[vec][axis] = float(raw)
            except ValueError:
                raise ProtocolError(f"Bad value for '{key}': {raw!r}", raw=message) from None

        for vec, axes in vectors.items():
            values[vec] = Vector3(**axes)
        return cls(**values)  # type: ignore[arg-type]

    def as_row(self) -> Dict[str, float]:
        row: Dict[str, float] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Vector3):
                for axis in ("x", "y", "z"):
                    row[f"{f.name}_{axis}"] = getattr(value, axis)
            else:
                row[f.name] = value
        return row

# ==============================================================================
# 2. LISTENER
# ==============================================================================

class TelemetryListener:
    """
    Binds the state port and hands every parsed broadcast to `on_state`.
    The drone sends state to the broadcast address, so this only works on
    the drone's own access point.
    """
    def __init__(self, on_state: Callable[[Telemetry], None], local: Tuple[str, int]):
        self.on_state = on_state
        self.local = local
        self.transport: Optional[asyncio.DatagramTransport] = None
        self.received = 0
        self.rejected = 0

    class StateProtocol(asyncio.DatagramProtocol):
        def __init__(self, owner: 'TelemetryListener'):
            self.owner = owner

        def datagram_received(self, data: bytes, addr: Tuple[str, int]):
            self.owner._handle(data)

        def error_received(self, exc):
            logger.error(f"State socket error: {exc}")

    def _handle(self, data: bytes) -> None:
        message = data.decode("ascii", errors="ignore").strip()
        if not message:
            return
        try:
            state = Telemetry.from_message(message)
        except ProtocolError as e:
            self.rejected += 1
            logger.warning(f"Skipping malformed state message: {e}")
            return
        self.received += 1
        self.on_state(state)

    async def start(self) -> None:
        if self.transport:
            return
        loop = asyncio.get_running_loop()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: self.StateProtocol(self),
                local_addr=self.local,
            )
        except OSError as e:
            raise TransportError(f"Cannot bind state port {self.local}: {e}") from e
        self.transport = cast(asyncio.DatagramTransport, transport)
        logger.info(f"Listening for state at {self.local[0]}:{self.local[1]}")

    def stop(self) -> None:
        if self.transport:
            self.transport.close()
            self.transport = None
            logger.info("Stopped listening for state")

# ==============================================================================
# 3. STORE (the "Ring Buffer")
# ==============================================================================

class TelemetryStore:
    """
    Thread-safe storage for the last N state readings.
    Bridges the asyncio listener and anything reading from another thread
    (the dashboard's web server).
    """
    COLUMNS = ("time", *Telemetry().as_row())

    def __init__(self, max_len: int = 100):
        self.lock = threading.Lock()
        self.max_len = max_len
        self.rows: Deque[Dict[str, float]] = collections.deque(maxlen=max_len)
        self.latest: Optional[Telemetry] = None
        # Start time for relative X-axis
        self.start_time = time.monotonic()

    def __call__(self, state: Telemetry) -> None:
        self.add_reading(state)

    def __len__(self) -> int:
        with self.lock:
            return len(self.rows)

    def add_reading(self, state: Telemetry) -> None:
        with self.lock:
            self.latest = state
            self.rows.append({"time": time.monotonic() - self.start_time, **state.as_row()})

    def get_dataframe(self) -> pd.DataFrame:
        with self.lock:
            return pd.DataFrame(list(self.rows), columns=list(self.COLUMNS))
