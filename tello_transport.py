import asyncio
import logging
from typing import AsyncIterator, List, Optional, Tuple, Union, cast

from tello_errors import TransportError

logger = logging.getLogger(__name__)

Addr = Tuple[str, int]

# Pushed onto the receive queue to end the stream
_CLOSED = object()


class DatagramTransport:
    """
    Asyncio UDP endpoint for the drone's command port.
    - One fixed peer, chosen at construction.
    - Single consumer for inbound payloads (receive()).
    - Socket errors end the stream with TransportError.
    """
    def __init__(self, peer: Addr, local: Addr = ("0.0.0.0", 0)):
        self.peer: Addr = peer
        self.local: Addr = local
        # Source address replies must come from; the resolved peer once open
        self.source: Addr = peer
        self.transport: Optional[asyncio.DatagramTransport] = None
        self.protocol: Optional['DatagramTransport.TransportProtocol'] = None
        self._rx_queue: "asyncio.Queue[Union[bytes, object]]" = asyncio.Queue()
        self._error: Optional[TransportError] = None
        self._closed = False
        self._buffered = 0

    class TransportProtocol(asyncio.DatagramProtocol):
        """
        Protocol layer that filters traffic and feeds the receive queue.
        """
        def __init__(self, owner: 'DatagramTransport'):
            self.owner = owner
            self.transport: Optional[asyncio.DatagramTransport] = None

        def connection_made(self, transport: asyncio.BaseTransport):
            self.transport = cast(asyncio.DatagramTransport, transport)

        def datagram_received(self, data: bytes, addr: Addr):
            # Filter 1: only the drone talks on this socket
            if addr[:2] != self.owner.source:
                logger.debug(f"Dropped datagram from unexpected peer {addr}")
                return
            # Filter 2: drop 0-byte keepalives
            if not data:
                return
            self.owner._deliver(data)

        def error_received(self, exc: Exception):
            logger.error(f"Transport Error: {exc}")
            self.owner._fail(exc)

        def connection_lost(self, exc: Optional[Exception]):
            if exc:
                logger.warning(f"Connection lost: {exc}")
                self.owner._fail(exc)
            else:
                self.owner._finish()

    @property
    def is_open(self) -> bool:
        return self.transport is not None and not self._closed

    async def open(self) -> None:
        if self.transport:
            return
        if self._closed:
            raise TransportError("Transport already closed; create a new one")

        loop = asyncio.get_running_loop()
        try:
            transport, protocol = await loop.create_datagram_endpoint(
                lambda: self.TransportProtocol(self),
                local_addr=self.local,
                remote_addr=self.peer,
            )
        except OSError as e:
            raise TransportError(f"Cannot open UDP endpoint to {self.peer}: {e}") from e

        self.transport = cast(asyncio.DatagramTransport, transport)
        self.protocol = cast(DatagramTransport.TransportProtocol, protocol)
        peername = self.transport.get_extra_info("peername")
        if peername:
            self.source = tuple(peername[:2])
        logger.info(f"Connected to {self.peer} from {self.transport.get_extra_info('sockname')}")

    def send(self, packet: bytes) -> None:
        if self._error:
            raise self._error
        if not self.is_open:
            raise TransportError("Transport is not open")
        try:
            self.transport.sendto(packet)
        except OSError as e:
            raise TransportError(f"Send to {self.peer} failed: {e}") from e
        logger.debug(f"TX {packet!r}")

    async def receive(self) -> AsyncIterator[bytes]:
        """
        Yields inbound payloads in arrival order until the transport closes.
        Raises TransportError if the socket reported a fault.
        """
        while True:
            item = await self._rx_queue.get()
            if item is _CLOSED:
                if self._error:
                    raise self._error
                return
            self._buffered -= 1
            logger.debug(f"RX {item!r}")
            yield cast(bytes, item)

    def pending(self) -> int:
        """Datagrams received but not yet handed to the consumer."""
        return self._buffered

    def flush(self) -> List[bytes]:
        """
        Drops datagrams received but not yet consumed and returns them.
        The end-of-stream marker is kept.
        """
        dropped: List[bytes] = []
        while not self._rx_queue.empty():
            try:
                item = self._rx_queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if item is _CLOSED:
                self._rx_queue.put_nowait(_CLOSED)
                break
            self._buffered -= 1
            dropped.append(cast(bytes, item))
        return dropped

    def _deliver(self, data: bytes) -> None:
        self._buffered += 1
        self._rx_queue.put_nowait(data)

    def _fail(self, exc: Exception) -> None:
        if self._error is None:
            self._error = exc if isinstance(exc, TransportError) else TransportError(str(exc))
        self._finish()

    def _finish(self) -> None:
        if not self._closed:
            self._closed = True
            self._rx_queue.put_nowait(_CLOSED)

    def close(self) -> None:
        if self.transport:
            self.transport.close()
            self.transport = None
            self.protocol = None
        self._finish()
