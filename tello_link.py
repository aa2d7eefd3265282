import asyncio
import inspect
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, FrozenSet, Optional, Union

from tello_config import TelloOptions, TimeoutPolicy
from tello_errors import (
    AckError,
    CommandTimeout,
    IllegalStateError,
    LinkTimeout,
    ProtocolError,
    TelloError,
    TransportError,
)
from tello_protocol import Command, Reply, ReplyKind, Verb, decode, encode
from tello_transport import DatagramTransport
from telemetry import Telemetry, TelemetryListener

logger = logging.getLogger(__name__)

Probe = Callable[[], Union[bool, Awaitable[bool]]]
TransportFactory = Callable[[TelloOptions], DatagramTransport]

# ==============================================================================
# 1. LINK STATE MACHINE
# ==============================================================================

class LinkState(Enum):
    NO_WIFI        = "no_wifi"
    WIFI_JOINED    = "wifi_joined"
    CONNECTED_IDLE = "connected_idle"
    CONNECTED_BUSY = "connected_busy"


TRANSITIONS: Dict[LinkState, FrozenSet[LinkState]] = {
    LinkState.NO_WIFI: frozenset({LinkState.WIFI_JOINED}),
    LinkState.WIFI_JOINED: frozenset({LinkState.CONNECTED_IDLE}),
    LinkState.CONNECTED_IDLE: frozenset({LinkState.CONNECTED_BUSY, LinkState.WIFI_JOINED}),
    LinkState.CONNECTED_BUSY: frozenset({LinkState.CONNECTED_IDLE}),
}


class LinkStateMachine:
    def __init__(self, state: LinkState = LinkState.NO_WIFI):
        self._state = state

    @property
    def state(self) -> LinkState:
        return self._state

    def can(self, target: LinkState) -> bool:
        return target in TRANSITIONS[self._state]

    def require(self, *states: LinkState) -> None:
        if self._state not in states:
            allowed = ", ".join(s.name for s in states)
            raise IllegalStateError(f"Link is {self._state.name}, operation needs {allowed}")

    def advance(self, target: LinkState) -> None:
        if not self.can(target):
            raise IllegalStateError(f"Illegal transition {self._state.name} -> {target.name}")
        previous, self._state = self._state, target
        # Busy/idle cycles on every command; keep them out of INFO
        if {previous, target} == {LinkState.CONNECTED_IDLE, LinkState.CONNECTED_BUSY}:
            logger.debug(f"Link {previous.name} -> {target.name}")
        else:
            logger.info(f"Link {previous.name} -> {target.name}")


async def wait_for_link(probe: Probe, poll_interval: float, timeout: float) -> None:
    """
    Polls the platform probe until it reports association with the drone's
    access point. Raises LinkTimeout after `timeout` seconds.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    polls = 0

    while True:
        polls += 1
        associated = probe()
        if inspect.isawaitable(associated):
            associated = await associated
        if associated:
            logger.info(f"WiFi association observed after {polls} poll(s)")
            return

        remaining = deadline - loop.time()
        if remaining <= 0:
            raise LinkTimeout(f"No association with the drone network after {timeout:.1f}s")
        await asyncio.sleep(min(poll_interval, remaining))

# ==============================================================================
# 2. COMMAND / ACK CORRELATOR
# ==============================================================================

@dataclass
class PendingCommand:
    command: Command
    payload: bytes
    created: float
    timeout: float
    future: "asyncio.Future[Reply]"
    timer: Optional[asyncio.Handle] = field(default=None, repr=False)

    @property
    def deadline(self) -> float:
        return self.created + self.timeout

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class Correlator:
    """
    Keeps at most one command in flight and pairs it with the next reply.

    Tello replies carry no request id, so the next datagram after a send is
    the reply to that send. The lock makes concurrent submitters queue up
    instead of racing for the slot.
    """
    def __init__(self, transport: DatagramTransport, link: LinkStateMachine,
                 timeouts: Optional[TimeoutPolicy] = None):
        self.transport = transport
        self.link = link
        self.timeouts = timeouts or TimeoutPolicy()
        self._slot = asyncio.Lock()
        self._pending: Optional[PendingCommand] = None
        self._failure: Optional[TransportError] = None
        self._rx_task: Optional["asyncio.Task[None]"] = None

    @property
    def pending(self) -> Optional[PendingCommand]:
        return self._pending

    @property
    def failure(self) -> Optional[TransportError]:
        return self._failure

    def start(self) -> None:
        if self._rx_task is None:
            self._rx_task = asyncio.get_running_loop().create_task(self._receive_loop())

    async def submit(self, command: Command) -> Reply:
        """
        Sends one command and waits for its reply.
        Raises CommandTimeout, ProtocolError or TransportError; the reply may
        still be an ERROR, which the caller turns into AckError.
        """
        payload = encode(command)  # InvalidArgumentError before any I/O

        async with self._slot:
            if self._failure:
                raise self._failure

            if command.verb is Verb.COMMAND:
                self.link.require(LinkState.WIFI_JOINED)
                return await self._exchange(command, payload)

            self.link.advance(LinkState.CONNECTED_BUSY)
            try:
                return await self._exchange(command, payload)
            finally:
                self.link.advance(LinkState.CONNECTED_IDLE)

    async def _exchange(self, command: Command, payload: bytes) -> Reply:
        if self._pending is not None:
            raise IllegalStateError(f"'{self._pending.command}' is still in flight")

        loop = asyncio.get_running_loop()
        timeout = self.timeouts.for_command(command)

        # Clear pre-send; anything queued now answers an earlier command
        for data in self.transport.flush():
            logger.debug(f"Discarding stray reply {data!r}")

        self.transport.send(payload)
        pending = PendingCommand(command, payload, loop.time(), timeout, loop.create_future())
        pending.timer = loop.call_later(timeout, self._on_deadline, pending)
        self._pending = pending

        try:
            return await pending.future
        finally:
            pending.cancel_timer()
            if self._pending is pending:
                self._pending = None

    def _settle(self, pending: PendingCommand, reply: Optional[Reply] = None,
                exc: Optional[BaseException] = None) -> None:
        # First resolution wins; anything later is a no-op
        if pending.future.done():
            return
        pending.cancel_timer()
        if self._pending is pending:
            self._pending = None
        if exc is not None:
            pending.future.set_exception(exc)
        else:
            pending.future.set_result(reply)

    def _on_deadline(self, pending: PendingCommand) -> None:
        if pending.future.done():
            return
        if self.transport.pending():
            # A datagram already arrived; let the receive loop match it first
            pending.timer = asyncio.get_running_loop().call_soon(self._on_deadline, pending)
            return
        logger.warning(f"Timeout: '{pending.command}' after {pending.timeout:.2f}s")
        self._settle(pending, exc=CommandTimeout(str(pending.command), pending.timeout))

    def _dispatch(self, data: bytes) -> None:
        pending = self._pending
        if pending is None or pending.future.done():
            logger.debug(f"Discarding stray reply {data!r}")
            return

        try:
            reply = decode(data, query=pending.command.is_query)
        except ProtocolError as e:
            logger.warning(f"Bad reply to '{pending.command}': {e}")
            self._settle(pending, exc=e)
            return

        if reply is None:
            logger.debug(f"Discarding noise {data!r}")
            return

        elapsed = asyncio.get_running_loop().time() - pending.created
        logger.debug(f"'{pending.command}' -> {reply.kind.name} {reply.payload!r} ({elapsed * 1000:.0f} ms)")
        self._settle(pending, reply=reply)

    async def _receive_loop(self) -> None:
        try:
            async for data in self.transport.receive():
                self._dispatch(data)
        except TransportError as e:
            logger.error(f"Receive loop stopped: {e}")
            self._failure = e
            if self._pending is not None:
                self._settle(self._pending, exc=e)

    async def close(self, graceful: bool = False) -> None:
        """
        Stops the receive loop and closes the transport. With graceful=True an
        in-flight command is allowed to resolve first.
        """
        if graceful:
            async with self._slot:
                await self._shutdown()
        else:
            await self._shutdown()

    async def _shutdown(self) -> None:
        pending = self._pending
        if pending is not None:
            pending.cancel_timer()
            if not pending.future.done():
                pending.future.cancel()
            self._pending = None

        self.transport.close()

        if self._rx_task is not None:
            self._rx_task.cancel()
            await asyncio.gather(self._rx_task, return_exceptions=True)
            self._rx_task = None

# ==============================================================================
# 3. DRONE SESSION
# ==============================================================================

def _default_transport(options: TelloOptions) -> DatagramTransport:
    return DatagramTransport(options.drone_addr, options.local_addr)


class DroneSession:
    """
    The conversation with one drone: link state, transport and correlator.
    Not safe to share between independent owners; the typed handles in
    tello_drone wrap it.
    """
    def __init__(self, options: Optional[TelloOptions] = None,
                 transport_factory: Optional[TransportFactory] = None):
        self.options = options or TelloOptions()
        self.link = LinkStateMachine()
        self._transport_factory = transport_factory or _default_transport
        self.correlator: Optional[Correlator] = None
        self.telemetry: Optional[TelemetryListener] = None

    @property
    def state(self) -> LinkState:
        return self.link.state

    async def wait_for_link(self, probe: Probe) -> None:
        self.link.require(LinkState.NO_WIFI)
        logger.info("Waiting for WiFi...")
        await wait_for_link(probe, self.options.wifi_poll_interval, self.options.wifi_timeout)
        self.link.advance(LinkState.WIFI_JOINED)

    async def connect(self, on_state: Optional[Callable[[Telemetry], None]] = None) -> None:
        """
        Opens the command socket and puts the drone in command mode.
        On any failure the session is left in WIFI_JOINED with nothing open.
        """
        self.link.require(LinkState.WIFI_JOINED)

        transport = self._transport_factory(self.options)
        correlator = Correlator(transport, self.link, self.options.timeouts)
        try:
            await transport.open()
            correlator.start()

            logger.info("Putting drone in command mode...")
            reply = await correlator.submit(Command.connect())
            if reply.kind is ReplyKind.ERROR:
                raise AckError(Verb.COMMAND.value, reply.reason)
        except BaseException:
            await correlator.close()
            raise

        self.correlator = correlator
        self.link.advance(LinkState.CONNECTED_IDLE)

        if on_state is not None:
            await self._start_telemetry(on_state)

    async def _start_telemetry(self, on_state: Callable[[Telemetry], None]) -> None:
        listener = TelemetryListener(on_state, ("0.0.0.0", self.options.state_port))
        try:
            await listener.start()
        except TelloError:
            await self._teardown()
            self.link.advance(LinkState.WIFI_JOINED)
            raise
        self.telemetry = listener

    async def submit(self, command: Command) -> Reply:
        if self.correlator is None:
            raise IllegalStateError(f"Link is {self.state.name}; connect first")
        return await self.correlator.submit(command)

    async def disconnect(self) -> None:
        """Closes the command socket; the session drops back to WIFI_JOINED."""
        self.link.require(LinkState.CONNECTED_IDLE, LinkState.CONNECTED_BUSY)
        await self._teardown(graceful=True)
        self.link.advance(LinkState.WIFI_JOINED)

    async def _teardown(self, graceful: bool = False) -> None:
        if self.telemetry is not None:
            self.telemetry.stop()
            self.telemetry = None
        if self.correlator is not None:
            await self.correlator.close(graceful)
            self.correlator = None

    async def close(self) -> None:
        """Abandons the session; an in-flight command resolves as cancelled."""
        await self._teardown()
