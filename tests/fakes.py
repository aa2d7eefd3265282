"""
In-memory stand-ins for the socket and the WiFi probe.
"""
import asyncio
from typing import Dict, List, Optional

from tello_config import TelloOptions, TimeoutPolicy
from tello_errors import TransportError
from tello_transport import DatagramTransport

FAST_OPTIONS = TelloOptions(
    timeouts=TimeoutPolicy(mode=0.2, motion=0.2, query=0.2),
    wifi_poll_interval=0.01,
    wifi_timeout=0.5,
)


class FakeTransport(DatagramTransport):
    """
    Records every send and answers from `script` on the next loop tick.
    Unscripted commands get b"ok"; a None entry means the drone stays silent.
    """
    def __init__(self, script: Optional[Dict[str, Optional[bytes]]] = None):
        super().__init__(("192.168.10.1", 8889))
        self.script: Dict[str, Optional[bytes]] = script if script is not None else {}
        self.sent: List[bytes] = []
        self.opened = False

    @property
    def is_open(self) -> bool:
        return self.opened and not self._closed

    async def open(self) -> None:
        self.opened = True

    def send(self, packet: bytes) -> None:
        if self._error:
            raise self._error
        if not self.is_open:
            raise TransportError("Transport is not open")
        self.sent.append(packet)
        reply = self.script.get(packet.decode("ascii"), b"ok")
        if reply is not None:
            asyncio.get_running_loop().call_soon(self._deliver, reply)

    @property
    def sent_text(self) -> List[str]:
        return [p.decode("ascii") for p in self.sent]

    def feed(self, data: bytes) -> None:
        """Delivers a datagram as if it had just arrived from the drone."""
        self._deliver(data)

    def fail(self, exc: Exception) -> None:
        self._fail(exc)


class ScriptedProbe:
    """Reports association from the Nth poll on (1-based)."""
    def __init__(self, associated_from: int):
        self.associated_from = associated_from
        self.polls = 0

    def __call__(self) -> bool:
        self.polls += 1
        return self.polls >= self.associated_from
