# --- Standard library imports ---
import re
import socket

# --- Project imports ---
from .config import Config, WOL_PORT
from .errors import MalformedAddressError
from .logger import get_logger


# Define the logger once for the entire module
logger = get_logger("power")

BROADCAST_ADDRESS = "255.255.255.255"
SHUTDOWN_PORT = 10675

_OCTET = re.compile(r"[0-9A-Fa-f]{2}")

def parse_mac(mac: str) -> bytes:
    """
    Parse a MAC address of six colon-separated hex octets into 6 raw bytes.

    Raises:
        MalformedAddressError: If the octet count is not 6 or an octet is not hex.
    """
    octets = (mac or "").strip().split(":")
    if len(octets) != 6:
        raise MalformedAddressError(
            f"Invalid MAC address {mac!r}: expected 6 octets, got {len(octets)}"
        )

    for octet in octets:
        if not _OCTET.fullmatch(octet):
            raise MalformedAddressError(
                f"Invalid MAC address {mac!r}: bad octet {octet!r}"
            )

    return bytes(int(octet, 16) for octet in octets)

def build_magic_packet(mac: str) -> bytes:
    """
    Build the 102-byte Wake-on-LAN frame: 6 x 0xFF followed by the MAC x 16.
    """
    return b"\xff" * 6 + parse_mac(mac) * 16

def send_wake_on_lan(
    mac: str,
    broadcast: str = BROADCAST_ADDRESS,
    port: int = WOL_PORT,
) -> None:
    """
    Broadcast a Wake-on-LAN magic packet as a single UDP datagram.

    The MAC is validated before any socket is opened. Socket errors
    propagate so the caller can report a failed "turn on".
    """
    packet = build_magic_packet(mac)

    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        sock.sendto(packet, (broadcast, port))

    logger.info(f"⚡ Magic packet sent [{mac} → {broadcast}:{port}]")

def send_shutdown_command(
    ip: str,
    payload: str,
    port: int = SHUTDOWN_PORT,
    timeout: float = Config.SOCKET_TIMEOUT,
) -> bool:
    """
    Deliver the shutdown payload over TCP, then over UDP.

    Both transports are always attempted. Failures are logged and never
    raised; the receiver may listen on either transport.

    Returns:
        True if at least one transport delivered the payload, False otherwise.
    """
    data = payload.encode("utf-8")

    # TCP
    tcp_ok = False
    try:
        with socket.create_connection((ip, port), timeout=timeout) as conn:
            conn.sendall(data)
        tcp_ok = True
        logger.info(f"Shutdown command sent via TCP [{ip}:{port}]")
    except (OSError, OverflowError) as e:
        logger.warning(f"Shutdown via TCP failed [{ip}:{port}] ({e.__class__.__name__}: {e})")

    # UDP
    udp_ok = False
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.settimeout(timeout)
            sock.sendto(data, (ip, port))
        udp_ok = True
        logger.info(f"Shutdown command sent via UDP [{ip}:{port}]")
    except (OSError, OverflowError) as e:
        logger.warning(f"Shutdown via UDP failed [{ip}:{port}] ({e.__class__.__name__}: {e})")

    return tcp_ok or udp_ok

def is_online(ip: str, port: int, timeout: float = Config.PROBE_TIMEOUT) -> bool:
    """
    Check host reachability with a TCP connect (Layer 4).

    No data is exchanged; the connection is closed as soon as it opens.

    Args:
        ip: IP address or hostname to check.
        port: TCP port to attempt.
        timeout: Seconds before giving up on the connect.

    Returns:
        True if the connect succeeds, False on any connection error.
    """
    try:
        with socket.create_connection((ip, port), timeout=timeout):
            return True
    except (OSError, OverflowError):
        return False
