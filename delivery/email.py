"""
Email Delivery
通过 Resend HTTP 接口发送摘要邮件；失败以状态值返回，不抛出
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence

import httpx

from core import Artifact, DeliveryStatus
from utils.clock import DEFAULT_TIMEZONE
from utils.exceptions import DeliveryError
from utils.retry import RetryPolicy, run_with_retry
from .render import build_digest_html, build_subject


logger = logging.getLogger(__name__)


class Deliverer(Protocol):
    """投递协作者接口"""

    async def deliver(self, artifact: Artifact, weekly_bullets: Optional[Sequence[str]] = None) -> DeliveryStatus:
        ...


class EmailDeliverer:
    """Resend 邮件投递"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        to: Optional[str] = None,
        from_address: str = "onboarding@resend.dev",
        api_url: str = "https://api.resend.com/emails",
        policy: Optional[RetryPolicy] = None,
        timezone: str = DEFAULT_TIMEZONE,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api_key = api_key
        self.to = to
        self.from_address = from_address
        self.api_url = api_url
        self.policy = policy or RetryPolicy(max_attempts=2, base_delay=60.0)
        self.timezone = timezone
        self.timeout = timeout
        self._transport = transport
        self._sleep = sleep

    def _missing_config(self) -> Optional[str]:
        if not self.to:
            return "EMAIL_TO not configured"
        if not self.api_key:
            return "EMAIL_RESEND_API_KEY not configured"
        return None

    async def _send(self, payload: dict) -> str:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                self.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        if response.status_code >= 400:
            raise DeliveryError(
                f"Resend returned HTTP {response.status_code}",
                channel="email",
                body=response.text[:500],
            )
        data: Any = response.json() if response.content else {}
        return str((data or {}).get("id") or "")

    async def deliver(self, artifact: Artifact, weekly_bullets: Optional[Sequence[str]] = None) -> DeliveryStatus:
        missing = self._missing_config()
        if missing:
            logger.error("[Email] %s, skipping send", missing)
            return DeliveryStatus.failed(missing)

        payload = {
            "from": self.from_address,
            "to": self.to,
            "subject": build_subject(artifact, weekly_bullets, self.timezone),
            "html": build_digest_html(artifact, weekly_bullets, self.timezone),
        }

        try:
            message_id = await run_with_retry(
                lambda: self._send(payload),
                policy=self.policy,
                label="email",
                sleep=self._sleep,
            )
        except Exception as exc:
            logger.error("[Email] send failed after %d attempts: %s", self.policy.max_attempts, exc)
            logger.info(
                "[Email] full digest (email failed):\n%s",
                json.dumps(artifact.model_dump(mode="json"), ensure_ascii=False, indent=2),
            )
            return DeliveryStatus.failed(str(exc))

        logger.info("[Email] sent digest to %s (id: %s)", self.to, message_id or "n/a")
        return DeliveryStatus.sent(message_id or None)
