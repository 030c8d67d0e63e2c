import socket

import pytest

from home_control.config import AppConfig
from home_control.logger import setup_logging


# ========
# FIXTURES
# ========
@pytest.fixture(autouse=True)
def configure_logging():
    setup_logging()
    yield   # allow test to run


@pytest.fixture
def make_config():
    """Factory for AppConfig snapshots with sane test defaults."""
    def _make(**overrides) -> AppConfig:
        values = {
            "cloudflare_api_token": "mock_token",
            "cloudflare_api_email": "",
            "cloudflare_api_key": "",
            "cloudflare_zone_id": "aaa111",
            "cloudflare_record_id": "fff000",
            "cloudflare_record_name": "pc.starbase.com",
            "telegram_bot_token": "",
            "telegram_chat_id": "",
            "pc_ip_address": "127.0.0.1",
            "pc_mac_address": "AA:BB:CC:DD:EE:FF",
            "pc_shutdown_command": "shutdown-my-pc",
            "pc_probe_port": 3389,
        }
        values.update(overrides)
        return AppConfig(**values)

    return _make


@pytest.fixture
def tcp_listener():
    """Loopback TCP listener standing in for the target PC."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen()
    yield sock, sock.getsockname()[1]
    sock.close()


@pytest.fixture
def closed_port():
    """A loopback port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port
