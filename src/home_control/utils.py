# --- Standard library imports ---
import time
import socket
from typing import Iterable, Optional

# --- Third-party imports ---
import requests

# --- Project imports ---
from .config import Config
from .logger import get_logger


# Define the logger once for the entire module
logger = get_logger("utils")

DNS_TYPE_A = 1

def is_valid_ip(ip: str) -> bool:
    """
    Validate an IPv4 address using socket.

    Args:
        ip: IPv4 address string to validate.

    Returns:
        True if the IPv4 address is valid, False otherwise.
    """
    if not isinstance(ip, str):
        return False

    try:
        socket.inet_pton(socket.AF_INET, ip)
        return True
    except (OSError, ValueError):
        return False

def get_ip(services: Iterable[str] = Config.PUBLIC_IP_SERVICES) -> Optional[str]:
    """
    Resolve the current external IPv4 address.

    Tries multiple plaintext IP services in priority order.
    Returns the first valid IP or None if all sources fail.
    """
    for url in services:
        try:
            resp = requests.get(url, timeout=Config.API_TIMEOUT)
            resp.raise_for_status()

            ip = resp.text.strip()
            if is_valid_ip(ip):
                logger.debug(f"🌐 External IP acquired ({url})")
                return ip

            logger.warning(f"Invalid IP returned from {url}: {ip!r}")

        except requests.RequestException as e:
            logger.warning(f"IP lookup failed via {url} ({e.__class__.__name__})")

    return None

def doh_lookup(hostname: str) -> Optional[str]:
    """
    Resolve a hostname to an IPv4 address using DNS-over-HTTPS.

    Only the first answer with type A (1) is considered; CNAME hops
    and other record types in the Answer list are skipped.

    Returns:
        IPv4 address as a string, or None if resolution fails.
    """
    params = {"name": hostname, "type": "A"}
    headers = {"Accept": "application/dns-json"}

    try:
        resp = requests.get(
            Config.DOH_URL,
            params=params,
            headers=headers,
            timeout=Config.API_TIMEOUT
        )
        resp.raise_for_status()
        answers = resp.json().get("Answer") or []

    except requests.RequestException as e:
        logger.warning(f"DoH request failed for {hostname}: {e.__class__.__name__}")
        return None
    except ValueError:
        logger.warning(f"DoH response for {hostname} was not valid JSON")
        return None

    ip = next(
        (a.get("data") for a in answers if isinstance(a, dict) and a.get("type") == DNS_TYPE_A),
        None,
    )
    if ip is None:
        logger.warning(f"No A-record returned for {hostname}")
        return None

    if not is_valid_ip(ip):
        logger.warning(f"Invalid A-record for {hostname}: {ip!r}")
        return None

    logger.debug(f"DoH resolved {hostname} → {ip}")
    return ip

# ============================================================
# Performance Timing Utilities (optional instrumentation)
# ============================================================

class Timer:
    def __init__(self, logger):
        self.logger = logger
        self.cycle_start = None
        self.lap_start = None

    def start_cycle(self):
        """Call once at the beginning of a run cycle."""
        now = time.perf_counter()
        self.cycle_start = now
        self.lap_start = now

    def lap(self, label: str):
        """Measure time since last lap."""
        if self.lap_start is None:
            return

        now = time.perf_counter()
        delta_ms = (now - self.lap_start) * 1000
        self.logger.timing(f"Timing | {label:<34} [{delta_ms:8.1f} ms]")
        self.lap_start = now

    def end_cycle(self):
        """End-to-end duration."""
        if self.cycle_start is None:
            return
        total_ms = (time.perf_counter() - self.cycle_start) * 1000
        self.logger.timing(f"Timing | {'Total run_cycle()':<34} [{total_ms:8.1f} ms]")
        self.cycle_start = None
        self.lap_start = None
