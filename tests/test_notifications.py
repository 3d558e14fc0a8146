import json

import httpx
import pytest

from packages.erd_access.config import AccessSettings
from packages.erd_access.notifications import (
    WELCOME_COLOR,
    NotificationService,
    NotificationSink,
    WebhookClient,
)
from packages.erd_access.schemas import Member

MEMBER = Member(
    id="m-1", email="m1@example.com", name="Minji", image="https://img.test/m1.png"
)


def test_member_embed_layout():
    embed = NotificationService.build_member_embed(MEMBER).to_json()

    assert embed["color"] == WELCOME_COLOR == 0x00FF00
    assert "Minji" in embed["description"]
    assert embed["thumbnail"] == {"url": MEMBER.image}
    assert embed["fields"] == [
        {"name": "Name", "value": "Minji", "inline": True},
        {"name": "Email", "value": "m1@example.com", "inline": True},
    ]
    assert embed["footer"]["text"]
    assert embed["timestamp"]


@pytest.mark.asyncio
async def test_webhook_receives_embeds():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(204)

    service = NotificationService(
        WebhookClient("https://hooks.test/abc", transport=httpx.MockTransport(handler))
    )

    await service.send_on_created_member(MEMBER)

    assert captured["url"] == "https://hooks.test/abc"
    assert len(captured["body"]["embeds"]) == 1
    assert captured["body"]["embeds"][0]["fields"][1]["value"] == "m1@example.com"


@pytest.mark.asyncio
async def test_webhook_error_status_is_swallowed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"message": "down"})

    service = NotificationService(
        WebhookClient("https://hooks.test/abc", transport=httpx.MockTransport(handler))
    )

    await service.send_on_created_member(MEMBER)


@pytest.mark.asyncio
async def test_without_webhook_only_logs():
    service = NotificationService.from_settings(AccessSettings(discord_webhook_url=None))

    assert isinstance(service, NotificationSink)
    await service.send_on_created_member(MEMBER)


def test_from_settings_builds_client():
    settings = AccessSettings(discord_webhook_url="https://hooks.test/x", notification_timeout=2.5)

    service = NotificationService.from_settings(settings)

    assert isinstance(service._client, WebhookClient)
    assert service._client._timeout == 2.5
