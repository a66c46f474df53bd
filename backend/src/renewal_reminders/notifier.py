from __future__ import annotations

import base64
import json
import logging
import socket
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal, Protocol

from .config import Settings

logger = logging.getLogger(__name__)

SendResultStatus = Literal["sent", "failed"]


@dataclass(frozen=True)
class SendResult:
    status: SendResultStatus
    attempted_at: datetime
    provider_message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "sent"


class MessageSender(Protocol):
    def send(self, address: str, body: str) -> SendResult: ...


class LoggingMessageSender:
    """Mock transport for environments without a live SMS gateway."""

    def __init__(self) -> None:
        self._counter = 0

    def send(self, address: str, body: str) -> SendResult:
        attempted_at = datetime.now(timezone.utc)
        self._counter += 1
        logger.info("MOCK SMS to %s: %s", mask_contact_target(address), body)
        return SendResult(
            status="sent",
            attempted_at=attempted_at,
            provider_message_id=f"mock-{int(attempted_at.timestamp())}-{self._counter:04d}",
        )


class _SmsSendError(Exception):
    """Internal error raised when an SMS gateway request fails."""

    def __init__(self, error_code: str, message: str) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.message = message


class HttpSmsSender:
    """Sends SMS through a Twilio-compatible REST gateway."""

    def __init__(
        self,
        *,
        base_url: str,
        account_sid: str,
        auth_token: str,
        from_number: str,
        timeout_seconds: int = 30,
        max_length: int = 1600,
    ) -> None:
        stripped_url = base_url.strip().rstrip("/")
        if not stripped_url:
            raise ValueError("base_url must not be empty")
        if not account_sid.strip():
            raise ValueError("account_sid must not be empty")
        if not auth_token.strip():
            raise ValueError("auth_token must not be empty")
        if not from_number.strip():
            raise ValueError("from_number must not be empty")
        if max_length <= 0:
            raise ValueError("max_length must be positive")
        self._base_url = stripped_url
        self._account_sid = account_sid.strip()
        self._auth_token = auth_token.strip()
        self._from_number = from_number.strip()
        self._timeout_seconds = timeout_seconds
        self._max_length = max_length

    def send(self, address: str, body: str) -> SendResult:
        attempted_at = datetime.now(timezone.utc)
        recipient = address.strip()
        if not recipient:
            return SendResult(
                status="failed",
                attempted_at=attempted_at,
                error_code="recipient_missing",
                error_message="Recipient phone number is empty",
            )

        try:
            response_data = self._post(
                {
                    "To": recipient,
                    "From": self._from_number,
                    "Body": truncate_body(body, self._max_length),
                }
            )
        except _SmsSendError as exc:
            return SendResult(
                status="failed",
                attempted_at=attempted_at,
                error_code=exc.error_code,
                error_message=f"{exc.message} (recipient: {mask_contact_target(recipient)})",
            )

        message_id = response_data.get("sid")
        return SendResult(
            status="sent",
            attempted_at=attempted_at,
            provider_message_id=message_id if isinstance(message_id, str) else None,
        )

    def _post(self, form: dict[str, str]) -> dict[str, object]:
        """POST a form-encoded message to the gateway's Messages resource."""
        url = f"{self._base_url}/2010-04-01/Accounts/{self._account_sid}/Messages.json"
        credentials = base64.b64encode(f"{self._account_sid}:{self._auth_token}".encode("utf-8")).decode("ascii")
        request = urllib.request.Request(
            url,
            data=urllib.parse.urlencode(form).encode("utf-8"),
            headers={
                "Authorization": f"Basic {credentials}",
                "Content-Type": "application/x-www-form-urlencoded",
                "Accept": "application/json",
            },
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self._timeout_seconds) as response:
                return json.loads(response.read().decode("utf-8"))  # type: ignore[no-any-return]
        except urllib.error.HTTPError as exc:
            raise _SmsSendError(
                error_code=f"http_{exc.code}",
                message=f"HTTP {exc.code}: {exc.reason}",
            ) from exc
        except urllib.error.URLError as exc:
            raise _SmsSendError(
                error_code="connection_error",
                message=f"Connection error: {exc.reason}",
            ) from exc
        except (socket.timeout, TimeoutError) as exc:
            raise _SmsSendError(
                error_code="timeout",
                message=f"Request timed out: {exc}",
            ) from exc
        except ValueError as exc:
            raise _SmsSendError(
                error_code="invalid_response",
                message=f"Gateway returned a non-JSON response: {exc}",
            ) from exc


def truncate_body(body: str, max_length: int) -> str:
    if len(body) <= max_length:
        return body
    if max_length <= 3:
        return body[:max_length]
    return body[: max_length - 3].rstrip() + "..."


def mask_contact_target(contact_target: str) -> str:
    normalized = contact_target.strip()
    if not normalized:
        return "***"

    digits = "".join(ch for ch in normalized if ch.isdigit())
    if len(digits) >= 4:
        return f"***{digits[-4:]}"

    if len(normalized) <= 4:
        return "*" * len(normalized)

    return f"{normalized[:2]}***{normalized[-2:]}"


def create_message_sender(settings: Settings) -> MessageSender:
    sender_type = settings.sms_sender_type.strip().lower()
    if sender_type == "http":
        return HttpSmsSender(
            base_url=settings.sms_api_base_url,
            account_sid=settings.sms_account_sid,
            auth_token=settings.sms_auth_token,
            from_number=settings.sms_from_number,
            timeout_seconds=settings.sms_timeout_seconds,
            max_length=settings.sms_max_length,
        )
    if sender_type in {"log", "mock", "stub"}:
        return LoggingMessageSender()
    raise RuntimeError(f"unsupported SMS_SENDER_TYPE: {settings.sms_sender_type}")
