"""Invitation email side-channel.

Delivery is best-effort and independent from invitation persistence: a
failed send is reported back in a MailResult and logged, never raised into
the invitation flow. Never leaks endpoint URLs or API keys in errors.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict

from promptteams.core.secrets import mask_email, redact_urls
from promptteams.core.settings import Settings

logger = logging.getLogger("promptteams.mailer")

# Status codes that warrant a retry
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class InvitationEmail(BaseModel):
    """Payload posted to the mail endpoint."""

    to: str
    link: str
    team_name: str
    invited_by_name: Optional[str] = None
    role: str


class MailEndpointResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    success: bool
    error: Optional[str] = None


@dataclass
class MailResult:
    """Result of sending one invitation email."""

    success: bool
    error: Optional[str] = None
    attempts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "error": self.error, "attempts": self.attempts}


class InvitationMailer(ABC):
    """Sends invitation emails. Must not raise; failures go in the result."""

    @abstractmethod
    async def send_invitation_email(self, email: InvitationEmail) -> MailResult: ...


class NullMailer(InvitationMailer):
    """Mailer used when no endpoint is configured: records, never sends."""

    def __init__(self) -> None:
        self.sent: list[InvitationEmail] = []

    async def send_invitation_email(self, email: InvitationEmail) -> MailResult:
        self.sent.append(email)
        logger.info("mail endpoint not configured; invitation to %s not emailed", mask_email(email.to))
        return MailResult(success=False, error="Email service not configured", attempts=0)


class HttpInvitationMailer(InvitationMailer):
    """POSTs InvitationEmail JSON to a hosted mail function."""

    def __init__(
        self,
        endpoint: str,
        api_key: str = "",
        timeout_s: float = 5.0,
        retries: int = 2,
        retry_delay: float = 0.2,
        retry_backoff: float = 2.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._endpoint = endpoint
        self._api_key = api_key
        self._timeout_s = timeout_s
        self._retries = retries
        self._retry_delay = retry_delay
        self._retry_backoff = retry_backoff
        self._http_client = http_client

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "HttpInvitationMailer":
        return cls(
            endpoint=settings.mailer_endpoint,
            api_key=settings.mailer_api_key,
            timeout_s=settings.mailer_timeout_s,
            retries=settings.mailer_retries,
            **kwargs,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def send_invitation_email(self, email: InvitationEmail) -> MailResult:
        client = self._http_client or httpx.AsyncClient(timeout=self._timeout_s)
        try:
            result = await self._send_with_retry(client, email)
        finally:
            if self._http_client is None:
                await client.aclose()

        if result.success:
            logger.info("invitation email sent to %s", mask_email(email.to))
        else:
            logger.warning(
                "invitation email to %s failed after %d attempt(s): %s",
                mask_email(email.to), result.attempts, result.error,
            )
        return result

    async def _send_with_retry(self, client: httpx.AsyncClient, email: InvitationEmail) -> MailResult:
        """Retries on 429/5xx and network errors. Does NOT retry other 4xx."""
        delay = self._retry_delay
        error = "unknown error"
        attempts = 0

        for attempt in range(self._retries + 1):
            attempts = attempt + 1
            try:
                resp = await client.post(
                    self._endpoint,
                    json=email.model_dump(),
                    headers=self._headers(),
                )
            except (httpx.NetworkError, httpx.TimeoutException) as e:
                error = redact_urls(f"network error: {e}")
            else:
                if resp.status_code < 400:
                    return self._parse_success(resp, attempts)
                error = redact_urls(f"HTTP {resp.status_code}: {_error_message(resp)}")
                if resp.status_code not in RETRYABLE_STATUS_CODES:
                    break

            if attempt < self._retries:
                await asyncio.sleep(delay)
                delay *= self._retry_backoff

        return MailResult(success=False, error=error, attempts=attempts)

    def _parse_success(self, resp: httpx.Response, attempts: int) -> MailResult:
        try:
            body = MailEndpointResponse.model_validate(resp.json())
        except ValueError:
            # 2xx without a JSON envelope counts as delivered
            return MailResult(success=True, attempts=attempts)
        return MailResult(success=body.success, error=body.error, attempts=attempts)


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict):
            return str(err.get("message", body))
        return str(err or body.get("message") or body)
    return str(body)


def build_mailer(settings: Settings) -> InvitationMailer:
    """HttpInvitationMailer when an endpoint is configured, else NullMailer."""
    if settings.mailer_endpoint:
        return HttpInvitationMailer.from_settings(settings)
    return NullMailer()
