import asyncio
import logging
from typing import Dict, List, Optional, Set, Tuple

# Speaks the same text protocol as the firmware so the client can be
# exercised over loopback before it goes near a real drone.
HOST = "127.0.0.1"

logger = logging.getLogger(__name__)

DEFAULT_VALUES: Dict[str, str] = {
    "speed?": "100.0",
    "battery?": "87",
    "time?": "0s",
    "height?": "0dm",
    "temp?": "63~65C",
    "attitude?": "pitch:0;roll:0;yaw:0;",
    "baro?": "-57.14",
    "tof?": "10mm",
    "wifi?": "90",
    "sdk?": "20",
    "sn?": "0TQDG7REDB2N4K",
}


class MockDrone(asyncio.DatagramProtocol):
    """
    Replies `ok` to every action, canned values to reads and `error` to
    anything unknown. Individual commands can be made to stay silent,
    be rejected, or answer late.
    """
    def __init__(self):
        self.transport: Optional[asyncio.DatagramTransport] = None
        self.received: List[str] = []
        self.values: Dict[str, str] = dict(DEFAULT_VALUES)
        self.silent: Set[str] = set()
        self.errors: Dict[str, str] = {}
        self.delays: Dict[str, float] = {}
        self.in_command_mode = False

    @property
    def addr(self) -> Tuple[str, int]:
        return self.transport.get_extra_info("sockname")[:2]

    def connection_made(self, transport):
        self.transport = transport
        logger.info(f"Mock drone listening on {self.addr[0]}:{self.addr[1]}")

    def datagram_received(self, data, addr):
        cmd = data.decode("ascii", errors="ignore").strip()
        if not cmd:
            return
        self.received.append(cmd)
        logger.info(f"Rx {cmd!r} from {addr}")

        verb = cmd.split()[0]
        if verb in self.silent:
            return # Simulate timeout

        response = self.handle_command(cmd)
        delay = self.delays.get(verb, 0.0)
        if delay:
            asyncio.get_running_loop().call_later(delay, self.reply, response, addr)
        else:
            self.reply(response, addr)

    def handle_command(self, cmd: str) -> str:
        verb = cmd.split()[0]
        if verb in self.errors:
            reason = self.errors[verb]
            return f"error {reason}" if reason else "error"

        if verb == "command":
            self.in_command_mode = True
            return "ok"
        if not self.in_command_mode:
            return "error Not in command mode"
        if verb in self.values:
            return self.values[verb]
        if verb in {"takeoff", "land", "emergency", "stop", "up", "down", "left",
                    "right", "forward", "back", "cw", "ccw", "flip", "speed"}:
            return "ok"
        return "error Unknown command"

    def reply(self, response: str, addr) -> None:
        if self.transport is None:
            return
        self.transport.sendto(response.encode("ascii"), addr)
        logger.info(f"Tx {response!r}")

    def inject(self, payload: bytes, addr) -> None:
        """Sends an unsolicited datagram, e.g. a stray or duplicate reply."""
        self.transport.sendto(payload, addr)


async def start_mock_drone(host: str = HOST, port: int = 0) -> Tuple[asyncio.DatagramTransport, MockDrone]:
    loop = asyncio.get_running_loop()
    transport, protocol = await loop.create_datagram_endpoint(
        MockDrone,
        local_addr=(host, port),
    )
    return transport, protocol
