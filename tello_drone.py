"""
Typed handles over a DroneSession, one class per link state.

    drone = Tello()
    drone = await drone.wait_for_link(probe)    # -> WifiJoinedTello
    drone = await drone.connect()               # -> ConnectedTello
    async with drone:
        await drone.take_off()
        await drone.rotate_clockwise(360)
        await drone.land()

A transition consumes the handle it is called on; using it afterwards
raises IllegalStateError.
"""
import asyncio
import logging
from typing import Callable, Optional, Tuple, Union

from tello_config import TelloOptions
from tello_errors import AckError, IllegalStateError, ProtocolError
from tello_link import DroneSession, LinkState, Probe, TransportFactory
from tello_protocol import (
    Command,
    Direction,
    FlipDirection,
    Reply,
    ReplyKind,
    Verb,
    parse_fields,
    parse_float,
    parse_int,
    parse_range,
)
from telemetry import Telemetry

logger = logging.getLogger(__name__)


class _Handle:
    _state: LinkState

    def __init__(self, session: DroneSession):
        self._session: Optional[DroneSession] = session

    @property
    def session(self) -> DroneSession:
        if self._session is None:
            raise IllegalStateError(f"{type(self).__name__} handle was already consumed")
        if self._session.state is not self._state and not (
            self._state is LinkState.CONNECTED_IDLE and self._session.state is LinkState.CONNECTED_BUSY
        ):
            raise IllegalStateError(
                f"{type(self).__name__} used while link is {self._session.state.name}"
            )
        return self._session

    @property
    def state(self) -> LinkState:
        return self._session.state if self._session else self._state

    def _consume(self) -> DroneSession:
        session = self.session
        self._session = None
        return session

    def __repr__(self) -> str:
        status = "consumed" if self._session is None else self._session.state.name
        return f"<{type(self).__name__} {status}>"


class Tello(_Handle):
    """A drone the host has not yet seen on WiFi."""
    _state = LinkState.NO_WIFI

    def __init__(self, options: Optional[TelloOptions] = None,
                 transport_factory: Optional[TransportFactory] = None):
        super().__init__(DroneSession(options, transport_factory))

    async def wait_for_link(self, probe: Optional[Probe] = None) -> "WifiJoinedTello":
        """
        Waits until `probe()` reports association with the drone's network.
        Without a probe the platform default from wifi_probe is used.
        """
        if probe is None:
            from wifi_probe import is_associated
            # The platform tools block; keep them off the event loop
            probe = lambda: asyncio.to_thread(is_associated)
        session = self.session
        await session.wait_for_link(probe)
        self._session = None
        return WifiJoinedTello(session)


class WifiJoinedTello(_Handle):
    """On the drone's network, not yet in command mode."""
    _state = LinkState.WIFI_JOINED

    async def connect(self, on_state: Optional[Callable[[Telemetry], None]] = None) -> "ConnectedTello":
        """
        Puts the drone in command mode. A failed handshake leaves this handle
        usable so the caller can decide whether to try again.
        """
        session = self.session
        await session.connect(on_state)
        self._session = None
        logger.info("Connected")
        return ConnectedTello(session)


class ConnectedTello(_Handle):
    """In command mode. Flight and query commands go one at a time."""
    _state = LinkState.CONNECTED_IDLE

    async def __aenter__(self) -> "ConnectedTello":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None:
            session, self._session = self._session, None
            await session.close()

    async def disconnect(self) -> WifiJoinedTello:
        session = self._consume()
        await session.disconnect()
        return WifiJoinedTello(session)

    # --- plumbing -----------------------------------------------------------

    async def send(self, command: Command) -> Reply:
        """Submits one command; ERROR replies become AckError."""
        reply = await self.session.submit(command)
        if reply.kind is ReplyKind.ERROR:
            logger.warning(f"'{command}' rejected: {reply.reason or 'error'}")
            raise AckError(str(command), reply.reason)
        return reply

    async def _ok(self, command: Command) -> None:
        reply = await self.send(command)
        if not reply.is_ack:
            raise ProtocolError(f"Expected ok for '{command}', got {reply.payload!r}", raw=reply.payload)

    async def _value(self, verb: Verb) -> str:
        reply = await self.send(Command.query(verb))
        if reply.kind is not ReplyKind.VALUE:
            raise ProtocolError(f"Expected a value for '{verb.value}', got {reply.kind.name}")
        return reply.payload

    # --- flight -------------------------------------------------------------

    async def take_off(self) -> None:
        await self._ok(Command.take_off())

    async def land(self) -> None:
        await self._ok(Command.land())

    async def emergency_stop(self) -> None:
        """Cuts the motors immediately. The drone falls."""
        await self._ok(Command.emergency())

    async def stop(self) -> None:
        """Hover in place."""
        await self._ok(Command.stop())

    async def move(self, direction: Union[Direction, str], distance_cm: int) -> None:
        await self._ok(Command.move(direction, distance_cm))

    async def move_up(self, distance_cm: int) -> None:
        await self.move(Direction.UP, distance_cm)

    async def move_down(self, distance_cm: int) -> None:
        await self.move(Direction.DOWN, distance_cm)

    async def move_left(self, distance_cm: int) -> None:
        await self.move(Direction.LEFT, distance_cm)

    async def move_right(self, distance_cm: int) -> None:
        await self.move(Direction.RIGHT, distance_cm)

    async def move_forward(self, distance_cm: int) -> None:
        await self.move(Direction.FORWARD, distance_cm)

    async def move_back(self, distance_cm: int) -> None:
        await self.move(Direction.BACK, distance_cm)

    async def rotate_clockwise(self, degrees: int) -> None:
        await self._ok(Command.rotate_cw(degrees))

    async def rotate_counterclockwise(self, degrees: int) -> None:
        await self._ok(Command.rotate_ccw(degrees))

    async def flip(self, direction: Union[FlipDirection, str]) -> None:
        await self._ok(Command.flip(direction))

    async def flip_left(self) -> None:
        await self.flip(FlipDirection.LEFT)

    async def flip_right(self) -> None:
        await self.flip(FlipDirection.RIGHT)

    async def flip_forward(self) -> None:
        await self.flip(FlipDirection.FORWARD)

    async def flip_back(self) -> None:
        await self.flip(FlipDirection.BACK)

    async def set_speed(self, cm_per_s: int) -> None:
        await self._ok(Command.set_speed(cm_per_s))

    # --- queries ------------------------------------------------------------

    async def query_speed(self) -> float:
        """cm/s"""
        return parse_float(await self._value(Verb.SPEED_Q))

    async def query_battery(self) -> int:
        """percent"""
        return parse_int(await self._value(Verb.BATTERY_Q))

    async def query_flight_time(self) -> int:
        """seconds"""
        return parse_int(await self._value(Verb.TIME_Q), unit="s")

    async def query_height(self) -> int:
        """decimetres"""
        return parse_int(await self._value(Verb.HEIGHT_Q), unit="dm")

    async def query_temperature(self) -> Tuple[int, int]:
        """(low, high) Celsius"""
        return parse_range(await self._value(Verb.TEMP_Q), unit="c")

    async def query_attitude(self) -> Tuple[int, int, int]:
        """(pitch, roll, yaw) degrees"""
        raw = await self._value(Verb.ATTITUDE_Q)
        values = parse_fields(raw)
        try:
            return (parse_int(values["pitch"]), parse_int(values["roll"]), parse_int(values["yaw"]))
        except KeyError as e:
            raise ProtocolError(f"Attitude reply lacks {e}", raw=raw) from None

    async def query_barometer(self) -> float:
        """metres"""
        return parse_float(await self._value(Verb.BARO_Q), unit="m")

    async def query_tof(self) -> int:
        """Time-of-flight distance, mm"""
        return parse_int(await self._value(Verb.TOF_Q), unit="mm")

    async def query_wifi(self) -> int:
        """Signal-to-noise ratio"""
        return parse_int(await self._value(Verb.WIFI_Q))

    async def query_sdk_version(self) -> str:
        return await self._value(Verb.SDK_Q)

    async def query_serial_number(self) -> str:
        return await self._value(Verb.SN_Q)
