import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from tello_errors import InvalidArgumentError
from tello_protocol import Command, CommandFamily

# Model constants (Tello / Tello EDU, AP mode)
DEFAULT_DRONE_HOST = "192.168.10.1"
CONTROL_UDP_PORT = 8889
STATE_UDP_PORT = 8890


@dataclass(frozen=True)
class TimeoutPolicy:
    """
    Reply ceilings per command family, in seconds.
    Take off / land routinely take several seconds on the firmware side,
    queries come back almost immediately.
    """
    mode: float = 15.0
    motion: float = 7.0
    query: float = 3.0

    def __post_init__(self):
        for name in ("mode", "motion", "query"):
            if getattr(self, name) <= 0:
                raise InvalidArgumentError(f"{name} timeout must be positive")

    def for_family(self, family: CommandFamily) -> float:
        if family is CommandFamily.MODE:
            return self.mode
        if family is CommandFamily.QUERY:
            return self.query
        return self.motion

    def for_command(self, command: Command) -> float:
        return self.for_family(command.family)


@dataclass(frozen=True)
class TelloOptions:
    drone_host: str = DEFAULT_DRONE_HOST
    drone_port: int = CONTROL_UDP_PORT
    local_host: str = "0.0.0.0"
    local_port: int = 0  # 0 -> any free port
    state_port: int = STATE_UDP_PORT
    timeouts: TimeoutPolicy = field(default_factory=TimeoutPolicy)
    wifi_poll_interval: float = 0.5
    wifi_timeout: float = 60.0

    def __post_init__(self):
        for name in ("drone_port", "local_port", "state_port"):
            port = getattr(self, name)
            if not 0 <= port <= 65535:
                raise InvalidArgumentError(f"{name} out of range: {port}")
        if self.drone_port == 0:
            raise InvalidArgumentError("drone_port must be set")
        if self.wifi_poll_interval <= 0 or self.wifi_timeout <= 0:
            raise InvalidArgumentError("WiFi poll interval and ceiling must be positive")

    @property
    def drone_addr(self) -> Tuple[str, int]:
        return (self.drone_host, self.drone_port)

    @property
    def local_addr(self) -> Tuple[str, int]:
        return (self.local_host, self.local_port)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "TelloOptions":
        """Builds options from TELLO_* environment variables, falling back to the defaults."""
        env = os.environ if env is None else env
        defaults = cls()
        base = TimeoutPolicy()

        try:
            timeouts = TimeoutPolicy(
                mode=float(env.get("TELLO_MODE_TIMEOUT", base.mode)),
                motion=float(env.get("TELLO_MOTION_TIMEOUT", base.motion)),
                query=float(env.get("TELLO_QUERY_TIMEOUT", base.query)),
            )
            return cls(
                drone_host=env.get("TELLO_IP", defaults.drone_host),
                drone_port=int(env.get("TELLO_PORT", defaults.drone_port)),
                local_host=env.get("TELLO_LOCAL_HOST", defaults.local_host),
                local_port=int(env.get("TELLO_LOCAL_PORT", defaults.local_port)),
                state_port=int(env.get("TELLO_STATE_PORT", defaults.state_port)),
                timeouts=timeouts,
                wifi_poll_interval=float(env.get("TELLO_WIFI_POLL", defaults.wifi_poll_interval)),
                wifi_timeout=float(env.get("TELLO_WIFI_TIMEOUT", defaults.wifi_timeout)),
            )
        except InvalidArgumentError:
            raise
        except ValueError as e:
            raise InvalidArgumentError(f"Bad TELLO_* environment value: {e}") from e
