# --- Standard library imports ---
import json
from enum import Enum
from dataclasses import dataclass
from typing import Optional

# --- Third-party imports ---
import requests

# --- Project imports ---
from .config import AppConfig, Config
from .errors import DnsAuthError, DnsUpdateError
from .logger import get_logger


# Cloudflare API error codes that mean "these credentials were rejected"
AUTH_ERROR_CODES = frozenset({
    6003,    # Invalid request headers
    6103,    # Invalid format for X-Auth-Key header
    6111,    # Invalid format for Authorization header
    9103,    # Unknown X-Auth-Key or X-Auth-Email
    9106,    # Missing X-Auth-Key, X-Auth-Email or Authorization headers
    9107,    # Missing X-Auth-Key, X-Auth-Email or Authorization headers
    9109,    # Invalid access token
    10000,   # Authentication error
})

AUTH_HTTP_STATUSES = frozenset({401, 403})


class AuthMethod(Enum):
    API_TOKEN = "api_token"
    API_KEY = "api_key"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class AuthAttempt:
    method: AuthMethod
    headers: dict


def is_auth_failure(status_code: int, body: Optional[dict]) -> bool:
    """
    Return True when a failed Cloudflare response is an authentication rejection.

    Either the HTTP status (401/403) or any error code in the response body
    from the authentication family is enough.
    """
    if status_code in AUTH_HTTP_STATUSES:
        return True

    errors = (body or {}).get("errors") or []
    return any(
        isinstance(err, dict) and err.get("code") in AUTH_ERROR_CODES
        for err in errors
    )


class CloudflareClient:
    """
    Handles all communication and logic specific to the Cloudflare DNS API.

    auth_attempts() lists the (method, headers) pairs to try in order;
    update_dns() walks that list, moving on only after an authentication
    rejection.
    """

    def __init__(
        self,
        config: AppConfig,
        api_base_url: Optional[str] = None,
        timeout: float = Config.API_TIMEOUT,
    ):
        self.logger = get_logger("cloudflare")

        # Configuration
        self.config = config
        self.api_base_url = (api_base_url or Config.CLOUDFLARE_API_BASE_URL).rstrip("/")
        self.zone_id = config.cloudflare_zone_id
        self.dns_name = config.cloudflare_record_name
        self.dns_record_id = config.cloudflare_record_id
        self.timeout = timeout

        self.record_type = "A"   # Fixed type
        self.ttl = 120           # Time-to-Live (seconds)
        self.proxied = False     # Grey cloud icon (not proxied thru Cloudflare)

    # --- Credentials ---
    def _token_attempt(self) -> AuthAttempt:
        return AuthAttempt(
            AuthMethod.API_TOKEN,
            {
                "Authorization": f"Bearer {self.config.cloudflare_api_token}",
                "Content-Type": "application/json",
            },
        )

    def _key_attempt(self) -> AuthAttempt:
        return AuthAttempt(
            AuthMethod.API_KEY,
            {
                "X-Auth-Email": self.config.cloudflare_api_email,
                "X-Auth-Key": self.config.cloudflare_api_key,
                "Content-Type": "application/json",
            },
        )

    def auth_attempts(self) -> list[AuthAttempt]:
        """
        Ordered credential attempts for one update.

        The token goes first when configured, otherwise the email/key pair.
        The other method is appended only if its credentials are complete,
        so there is never more than one fallback.
        """
        if self.config.has_api_token:
            attempts = [self._token_attempt()]
            if self.config.has_api_key_pair:
                attempts.append(self._key_attempt())
        else:
            # Sent even when incomplete; Cloudflare rejects it as a normal failure
            attempts = [self._key_attempt()]

        return attempts

    # --- Requests ---
    def _build_record_url(self) -> str:
        """Single Resource Endpoint for the configured record."""
        return (
            f"{self.api_base_url}/zones/"
            f"{self.zone_id}/dns_records/"
            f"{self.dns_record_id}"
        )

    def _patch_record(self, attempt: AuthAttempt, payload: dict) -> dict:
        """
        Send one PATCH with the given credentials.

        Raises:
            DnsAuthError: The credentials were rejected.
            DnsUpdateError: Any other HTTP or transport failure.
        """
        url = self._build_record_url()

        try:
            resp = requests.patch(
                url, headers=attempt.headers, json=payload, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise DnsUpdateError(
                f"Cloudflare PATCH failed for DNS record "
                f"[{self.dns_record_id}] ({e.__class__.__name__})"
            ) from e

        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.ok:
            self.logger.debug(
                "PATCH JSON response:\n%s",
                json.dumps(body, indent=2),
            )
            return (body or {}).get("result") or {}

        errors = (body or {}).get("errors") if isinstance(body, dict) else None
        message = (
            f"Cloudflare PATCH rejected ({attempt.method}) "
            f"HTTP {resp.status_code}: {errors or resp.text[:200]}"
        )

        if is_auth_failure(resp.status_code, body if isinstance(body, dict) else None):
            raise DnsAuthError(message, status_code=resp.status_code)
        raise DnsUpdateError(message, status_code=resp.status_code)

    def update_dns(self, new_ip: str) -> dict:
        """
        Update the DNS record to point to the provided IP address.

        Returns:
            dict: Updated DNS record from Cloudflare response

        Raises:
            DnsAuthError: Every credential attempt was rejected.
            DnsUpdateError: A non-auth failure; not retried here.
        """
        payload = {
            "type": self.record_type,
            "name": self.dns_name,
            "content": new_ip,
            "ttl": self.ttl,
            "proxied": self.proxied,
        }

        attempts = self.auth_attempts()
        last_error: Optional[DnsAuthError] = None

        for index, attempt in enumerate(attempts):
            try:
                return self._patch_record(attempt, payload)
            except DnsAuthError as e:
                last_error = e
                if index + 1 < len(attempts):
                    self.logger.warning(
                        f"Cloudflare rejected {attempt.method} credentials; "
                        f"retrying with {attempts[index + 1].method}"
                    )

        raise last_error
