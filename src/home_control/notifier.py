# --- Third-party imports ---
import requests

# --- Project imports ---
from .config import AppConfig, Config
from .logger import get_logger


class TelegramNotifier:
    """
    Send plain-text messages to the operator's Telegram chat.

    Delivery is best-effort: failures are logged and reported as False,
    never raised to the caller.
    """

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        api_base_url: str | None = None,
        timeout: float = Config.API_TIMEOUT,
    ):
        self.logger = get_logger("notifier")
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.api_base_url = (api_base_url or Config.TELEGRAM_API_BASE_URL).rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: AppConfig) -> "TelegramNotifier":
        return cls(config.telegram_bot_token, config.telegram_chat_id)

    @property
    def configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def send(self, text: str) -> bool:
        if not self.configured:
            self.logger.debug(f"Telegram not configured; dropping message: {text!r}")
            return False

        url = f"{self.api_base_url}/bot{self.bot_token}/sendMessage"
        try:
            resp = requests.post(
                url,
                json={"chat_id": self.chat_id, "text": text},
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            # The URL embeds the bot token; log the class only
            self.logger.warning(f"Telegram message failed ({e.__class__.__name__})")
            return False

        self.logger.info(f"📨 Telegram message sent: {text!r}")
        return True
