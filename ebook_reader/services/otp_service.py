"""
OTP service: Twilio Verify integration for phone-number ownership checks.

Stateless: the provider owns the code, its expiry and attempt counting; only
the phone number is sent. Formats are validated locally before any network
call. No retries; transport and HTTP failures surface as ProviderError.
"""
import logging
import re
from typing import Any

import requests

from ebook_reader.errors import InvalidCodeFormat, InvalidPhoneFormat, ProviderError

logger = logging.getLogger(__name__)

E164_RE = re.compile(r"^\+[1-9][0-9]{1,14}$")
OTP_RE = re.compile(r"^[0-9]{6}$")


def validate_phone_number(phone_number: str) -> str:
    if not isinstance(phone_number, str) or not E164_RE.fullmatch(phone_number):
        raise InvalidPhoneFormat()
    return phone_number


def validate_code(code: str) -> str:
    # fullmatch: "$" alone would accept a trailing newline
    if not isinstance(code, str) or not OTP_RE.fullmatch(code):
        raise InvalidCodeFormat()
    return code


class OtpVerifier:
    """Process-wide client for one Twilio Verify service."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        service_sid: str,
        *,
        base_url: str = "https://verify.twilio.com/v2",
        timeout: tuple = (5, 15),
        session: requests.Session | None = None,
    ):
        self.service_sid = service_sid
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.auth = (account_sid, auth_token)
        self._configured = bool(account_sid and auth_token and service_sid)

    def _verify_request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Call the Verify API with timeout. Raises ProviderError on transport errors."""
        if not self._configured:
            raise ProviderError("OTP provider is not configured")
        url = f"{self.base_url}/Services/{self.service_sid}{path}"
        kwargs.setdefault("timeout", self.timeout)
        try:
            return self._session.request(method, url, **kwargs)
        except requests.RequestException as e:
            logger.error("OTP provider request failed: %s", e)
            raise ProviderError("Failed to reach OTP provider") from e

    def send(self, phone_number: str) -> str:
        """Start an SMS verification; returns the provider status (e.g. "pending")."""
        validate_phone_number(phone_number)
        resp = self._verify_request(
            "POST", "/Verifications", data={"To": phone_number, "Channel": "sms"}
        )
        if not resp.ok:
            logger.error("OTP send failed for %s: HTTP %s", phone_number, resp.status_code)
            raise ProviderError("Failed to send OTP")
        status = resp.json().get("status", "")
        logger.info("OTP sent to %s, status: %s", phone_number, status)
        return status

    def check(self, phone_number: str, code: str) -> bool:
        """
        Return True only when the provider approves code for phone_number.
        A 404 means there is no pending verification (expired, already used
        or never sent) and is treated as a denial.
        """
        validate_phone_number(phone_number)
        validate_code(code)
        resp = self._verify_request(
            "POST", "/VerificationCheck", data={"To": phone_number, "Code": code}
        )
        if resp.status_code == 404:
            logger.warning("No pending OTP verification for %s", phone_number)
            return False
        if not resp.ok:
            logger.error("OTP check failed for %s: HTTP %s", phone_number, resp.status_code)
            raise ProviderError("Failed to verify OTP")
        approved = resp.json().get("status") == "approved"
        logger.info("OTP check for %s, approved: %s", phone_number, approved)
        return approved

    def check_configuration(self) -> bool:
        """Fetch the Verify service; False (logged) when unreachable or misconfigured."""
        try:
            resp = self._verify_request("GET", "")
        except ProviderError:
            return False
        if not resp.ok:
            logger.warning("Twilio Verify service check failed: HTTP %s", resp.status_code)
            return False
        return True

    def close(self) -> None:
        self._session.close()
