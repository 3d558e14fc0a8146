"""Discord webhook notifications for community events."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import httpx
import structlog

from .schemas import Member

__all__ = ["Embed", "NotificationService", "NotificationSink", "WebhookClient"]

logger = structlog.get_logger(__name__)

WELCOME_COLOR = 0x00FF00


@runtime_checkable
class NotificationSink(Protocol):
    async def send_on_created_member(self, member: Member) -> None:
        ...


@dataclass
class Embed:
    """Rich embed payload as accepted by Discord webhooks."""

    title: Optional[str] = None
    description: Optional[str] = None
    color: Optional[int] = None
    thumbnail: Optional[str] = None
    footer: Optional[str] = None
    timestamp: Optional[dt.datetime] = None
    fields: List[Dict[str, Any]] = field(default_factory=list)

    def add_field(self, name: str, value: str, *, inline: bool = False) -> "Embed":
        self.fields.append({"name": name, "value": value, "inline": inline})
        return self

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.title is not None:
            data["title"] = self.title
        if self.description is not None:
            data["description"] = self.description
        if self.color is not None:
            data["color"] = self.color
        if self.thumbnail:
            data["thumbnail"] = {"url": self.thumbnail}
        if self.footer is not None:
            data["footer"] = {"text": self.footer}
        if self.timestamp is not None:
            data["timestamp"] = self.timestamp.isoformat()
        if self.fields:
            data["fields"] = list(self.fields)
        return data


class WebhookClient:
    """POSTs embeds to a single webhook URL."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._transport = transport

    async def send(self, embeds: List[Embed]) -> None:
        payload = {"embeds": [embed.to_json() for embed in embeds]}
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(self._url, json=payload)
            response.raise_for_status()


class NotificationService:
    """Announces new members on the community webhook.

    Delivery is best effort: every failure is logged and absorbed so that
    the calling operation never fails because of a notification.
    """

    def __init__(self, client: Optional[WebhookClient] = None) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, settings: Any) -> "NotificationService":
        if not settings.discord_webhook_url:
            return cls()
        return cls(
            WebhookClient(settings.discord_webhook_url, timeout=settings.notification_timeout)
        )

    @staticmethod
    def build_member_embed(member: Member) -> Embed:
        embed = Embed(
            title="🎉 A new member just joined! 🎉",
            description=f"{member.name} has joined our community. Please welcome them!",
            color=WELCOME_COLOR,
            thumbnail=member.image,
            footer="Easy RD is growing",
            timestamp=dt.datetime.now(dt.timezone.utc),
        )
        embed.add_field("Name", member.name, inline=True)
        embed.add_field("Email", member.email, inline=True)
        return embed

    async def send_on_created_member(self, member: Member) -> None:
        if self._client is None:
            logger.info("notification.skipped", reason="webhook_not_configured", member_id=member.id)
            return
        try:
            await self._client.send([self.build_member_embed(member)])
        except Exception:
            logger.exception("notification.failed", member_id=member.id)
            return
        logger.info("notification.sent", member_id=member.id)
