import logging
import platform
import subprocess
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

# Tello access points are named TELLO-XXXXXX
DEFAULT_SSID_PREFIX = "TELLO"


def parse_netsh(output: str) -> Optional[str]:
    """`netsh wlan show interfaces` (Windows)"""
    for line in output.splitlines():
        key, sep, value = line.partition(":")
        if sep and key.strip() == "SSID":
            return value.strip() or None
    return None


def parse_networksetup(output: str) -> Optional[str]:
    """`networksetup -getairportnetwork en0` (macOS)"""
    marker = "Current Wi-Fi Network:"
    for line in output.splitlines():
        if line.startswith(marker):
            return line[len(marker):].strip() or None
    return None


def parse_nmcli(output: str) -> Optional[str]:
    """`nmcli -t -f active,ssid dev wifi` (Linux / NetworkManager)"""
    for line in output.splitlines():
        active, sep, ssid = line.partition(":")
        if sep and active == "yes":
            return ssid.strip() or None
    return None


def parse_iwgetid(output: str) -> Optional[str]:
    """`iwgetid -r` (Linux / wireless-tools)"""
    return output.strip() or None


def _commands(system: str):
    if system == "Windows":
        return [(["netsh", "wlan", "show", "interfaces"], parse_netsh)]
    if system == "Darwin": # Mac
        return [(["networksetup", "-getairportnetwork", "en0"], parse_networksetup)]
    # Linux
    return [
        (["iwgetid", "-r"], parse_iwgetid),
        (["nmcli", "-t", "-f", "active,ssid", "dev", "wifi"], parse_nmcli),
    ]


def _run(cmd: List[str]) -> Optional[str]:
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=5)
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"{cmd[0]} unavailable: {e}")
        return None
    if result.returncode != 0:
        logger.debug(f"{cmd[0]} exited {result.returncode}")
        return None
    return result.stdout


def current_ssid(system: Optional[str] = None) -> Optional[str]:
    """SSID of the network the host is associated with, or None."""
    system = system or platform.system()
    for cmd, parse in _commands(system):
        output = _run(cmd)
        if output is None:
            continue
        ssid = parse(output)
        if ssid:
            return ssid
    return None


def is_associated(prefix: str = DEFAULT_SSID_PREFIX) -> bool:
    ssid = current_ssid()
    logger.debug(f"Current SSID: {ssid}")
    return bool(ssid) and ssid.upper().startswith(prefix.upper())


def ssid_probe(prefix: str = DEFAULT_SSID_PREFIX) -> Callable[[], bool]:
    """A probe for Tello.wait_for_link() matching a custom SSID prefix."""
    return lambda: is_associated(prefix)
