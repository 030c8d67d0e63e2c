# --- Standard library imports ---
import os
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

# --- Third-party imports ---
from dotenv import load_dotenv, dotenv_values


# Load .env once for operational settings
load_dotenv()

class Config:
    """Centralized config for operational parameters of the control plane"""

    # --- Scheduling Policy ---
    try:
        CYCLE_INTERVAL = int(os.getenv("CYCLE_INTERVAL", 300))
    except ValueError:
        CYCLE_INTERVAL = 300

    ENFORCE_MIN_INTERVAL = (
        os.getenv("ENFORCE_MIN_INTERVAL", "true").lower() == "true"
    )

    # --- Scheduling Constants (NOT user configurable) ---
    MIN_CYCLE_INTERVAL = 120  # seconds (matches the DNS record TTL)

    # --- Network Policy (NOT user configurable) ---
    API_TIMEOUT = 8         # seconds (HTTP calls)
    SOCKET_TIMEOUT = 3.0    # seconds (shutdown delivery)
    PROBE_TIMEOUT = 2.0     # seconds (reachability probe)

    # --- Control Server ---
    SERVER_HOST = os.getenv("SERVER_HOST", "0.0.0.0")

    try:
        SERVER_PORT = int(os.getenv("SERVER_PORT", 8080))
    except ValueError:
        SERVER_PORT = 8080

    REQUEST_TIMEOUT = 5.0   # seconds to wait for the request line

    # --- Observability Policy ---
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_TIMING = os.getenv("LOG_TIMING", "false").lower() == "true"

    # --- Settings & status files ---
    SETTINGS_FILE = os.getenv("SETTINGS_FILE", ".env")
    STATUS_FILE = Path(
        os.getenv(
            "STATUS_FILE",
            str(Path.home() / ".cache" / "home_control" / "status.json"),
        )
    )

    # --- External endpoints ---
    CLOUDFLARE_API_BASE_URL = os.getenv(
        "CLOUDFLARE_API_BASE_URL", "https://api.cloudflare.com/client/v4"
    )
    TELEGRAM_API_BASE_URL = os.getenv(
        "TELEGRAM_API_BASE_URL", "https://api.telegram.org"
    )
    DOH_URL = os.getenv("DOH_URL", "https://cloudflare-dns.com/dns-query")

    # Plaintext "what is my IP" services, in priority order
    PUBLIC_IP_SERVICES = (
        "https://api.ipify.org",
        "https://ipv4.icanhazip.com",
        "https://ifconfig.me/ip",
        "https://ipecho.net/plain",
    )


# --- Build-time defaults for the per-cycle settings store ---
DEFAULTS = {
    "CLOUDFLARE_API_TOKEN": "",
    "CLOUDFLARE_API_EMAIL": "",
    "CLOUDFLARE_API_KEY": "",
    "CLOUDFLARE_ZONE_ID": "",
    "CLOUDFLARE_RECORD_ID": "",
    "CLOUDFLARE_RECORD_NAME": "",
    "TELEGRAM_BOT_TOKEN": "",
    "TELEGRAM_CHAT_ID": "",
    "PC_IP_ADDRESS": "127.0.0.1",
    "PC_MAC_ADDRESS": "00:00:00:00:00:00",
    "PC_PROBE_PORT": "3389",
    "PC_SHUTDOWN_COMMAND": "shutdown-my-pc",
    "PC_SHUTDOWN_PORT": "10675",
}

WOL_PORT = 9  # Fixed discard port for magic packets


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable snapshot of the operator-editable settings.

    Either the API token or the email/key pair is expected for DNS updates,
    but neither is enforced here. A missing credential surfaces as a failed
    update at call time.
    """
    cloudflare_api_token: str
    cloudflare_api_email: str
    cloudflare_api_key: str
    cloudflare_zone_id: str
    cloudflare_record_id: str
    cloudflare_record_name: str
    telegram_bot_token: str
    telegram_chat_id: str
    pc_ip_address: str
    pc_mac_address: str
    pc_shutdown_command: str
    pc_probe_port: int = 3389
    pc_shutdown_port: int = 10675
    wol_port: int = WOL_PORT

    @property
    def has_api_token(self) -> bool:
        return bool(self.cloudflare_api_token)

    @property
    def has_api_key_pair(self) -> bool:
        return bool(self.cloudflare_api_email and self.cloudflare_api_key)


def _port(values: dict, key: str) -> int:
    try:
        return int(values[key])
    except ValueError:
        logging.getLogger("home_control.config").warning(
            f"Invalid {key}={values[key]!r}; using default {DEFAULTS[key]}"
        )
        return int(DEFAULTS[key])

def load_app_config(settings_file: Optional[str] = None) -> AppConfig:
    """
    Read the settings store fresh and return an AppConfig snapshot.

    Precedence (lowest first): build-time DEFAULTS, process environment,
    settings file. The file is re-read on every call so operator edits
    take effect on the next cycle. Empty values count as unset.
    """
    path = settings_file or Config.SETTINGS_FILE

    values = dict(DEFAULTS)
    for key in DEFAULTS:
        env_value = (os.getenv(key) or "").strip()
        if env_value:
            values[key] = env_value

    file_values = dotenv_values(path) if Path(path).is_file() else {}
    for key, value in file_values.items():
        if key in DEFAULTS and value and value.strip():
            values[key] = value.strip()

    return AppConfig(
        cloudflare_api_token=values["CLOUDFLARE_API_TOKEN"],
        cloudflare_api_email=values["CLOUDFLARE_API_EMAIL"],
        cloudflare_api_key=values["CLOUDFLARE_API_KEY"],
        cloudflare_zone_id=values["CLOUDFLARE_ZONE_ID"],
        cloudflare_record_id=values["CLOUDFLARE_RECORD_ID"],
        cloudflare_record_name=values["CLOUDFLARE_RECORD_NAME"],
        telegram_bot_token=values["TELEGRAM_BOT_TOKEN"],
        telegram_chat_id=values["TELEGRAM_CHAT_ID"],
        pc_ip_address=values["PC_IP_ADDRESS"],
        pc_mac_address=values["PC_MAC_ADDRESS"],
        pc_shutdown_command=values["PC_SHUTDOWN_COMMAND"],
        pc_probe_port=_port(values, "PC_PROBE_PORT"),
        pc_shutdown_port=_port(values, "PC_SHUTDOWN_PORT"),
    )
