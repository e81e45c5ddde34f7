"""
Chat webhook fan-out (Discord-compatible payloads).

format_chat_message() turns an update's tagged content into a webhook message; ChatWebhookClient
posts it with httpx and never raises (returns ok/status so the caller can log).
"""
import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from liveblog.core.constants import (
    CHAT_EMBED_DESCRIPTION_MAX_LENGTH,
    CHAT_FIELD_MAX_LENGTH,
    CHAT_TEXT_MAX_LENGTH,
)

logger = logging.getLogger(__name__)

# Match-event presentation: (emoji, label, embed colour)
EVENT_PRESENTATION: dict[str, tuple[str, str, int | None]] = {
    "goal": ("⚽", "Goal", 0x10B981),
    "own_goal": ("\U0001f9f2", "Own goal", 0xF43F5E),
    "yellow_card": ("\U0001f7e8", "Yellow card", 0xF59E0B),
    "red_card": ("\U0001f7e5", "Red card", 0xEF4444),
    "substitution": ("\U0001f501", "Substitution", 0x38BDF8),
    "var_check": ("\U0001f9d1‍⚖️", "VAR check", 0xA78BFA),
    "kick_off": ("\U0001f7e2", "Kick-off", 0x94A3B8),
    "full_time": ("⏱️", "Full time", 0xD4D4D8),
}
DEFAULT_EVENT_EMOJI = "\U0001f539"


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _event_presentation(event: str) -> tuple[str, str, int | None]:
    if event in EVENT_PRESENTATION:
        return EVENT_PRESENTATION[event]
    label = event.replace("_", " ")
    return DEFAULT_EVENT_EMOJI, label[:1].upper() + label[1:], None


def _event_embed(content: dict) -> dict | None:
    event = _text(content.get("event"))
    if not event:
        return None
    meta = content.get("event_meta") or {}
    if not isinstance(meta, dict):
        meta = {}
    emoji, label, color = _event_presentation(event)
    team_label = _text(meta.get("teamLabel"))
    title = f"{emoji} {label}" + (f" - {team_label}" if team_label else "")
    description = "\n\n".join(p for p in (_text(content.get("title")), _text(content.get("text"))) if p)

    fields: list[dict] = []
    if event in ("goal", "own_goal"):
        player = _text(meta.get("player"))
        if player:
            name = "Final touch" if event == "own_goal" else "Scorer"
            fields.append({"name": name, "value": player[:CHAT_FIELD_MAX_LENGTH], "inline": False})
        if team_label:
            fields.append({"name": "Team", "value": team_label[:CHAT_FIELD_MAX_LENGTH], "inline": True})
    elif event == "substitution":
        player_out = _text(meta.get("playerOut"))
        player_in = _text(meta.get("playerIn"))
        if player_out:
            fields.append({"name": "Off", "value": player_out[:CHAT_FIELD_MAX_LENGTH], "inline": True})
        if player_in:
            fields.append({"name": "On", "value": player_in[:CHAT_FIELD_MAX_LENGTH], "inline": True})
        if team_label:
            fields.append({"name": "Team", "value": team_label[:CHAT_FIELD_MAX_LENGTH], "inline": False})
    elif team_label:
        fields.append({"name": "Team", "value": team_label[:CHAT_FIELD_MAX_LENGTH], "inline": False})

    side = {"home": "Home", "away": "Away"}.get(_text(meta.get("team")), "")
    footer = " • ".join(p for p in (f"{side} side" if side else "", team_label) if p)

    embed: dict[str, Any] = {"title": title, "timestamp": datetime.now(timezone.utc).isoformat()}
    if description:
        embed["description"] = description[:CHAT_EMBED_DESCRIPTION_MAX_LENGTH]
    if color is not None:
        embed["color"] = color
    if fields:
        embed["fields"] = fields
    if footer:
        embed["footer"] = {"text": footer}
    return embed


def format_chat_message(content: Any, public_image_url: str | None = None) -> dict | None:
    """
    Webhook payload for an update's content, or None when there is nothing to post
    (no content, or an image we cannot link publicly).
    """
    if not isinstance(content, dict) or "type" not in content:
        return None
    kind = content.get("type")

    if kind == "text":
        embed = _event_embed(content)
        if embed is not None:
            if content.get("image") and public_image_url:
                embed["image"] = {"url": public_image_url}
            return {"embeds": [embed]}
        title = _text(content.get("title"))
        text = _text(content.get("text"))
        lines = [f"**{title}**" if title else "", text]
        message: dict[str, Any] = {"content": "\n\n".join(p for p in lines if p)[:CHAT_TEXT_MAX_LENGTH]}
        if content.get("image") and public_image_url:
            message["embeds"] = [{"image": {"url": public_image_url}}]
        return message

    if kind == "link":
        url = _text(content.get("url"))
        embed = {"title": _text(content.get("title")) or url, "url": url}
        description = _text(content.get("description"))
        if description:
            embed["description"] = description[:CHAT_EMBED_DESCRIPTION_MAX_LENGTH]
        site_name = _text(content.get("siteName"))
        if site_name:
            embed["footer"] = {"text": site_name}
        image = _text(content.get("image"))
        if image.startswith("http"):
            embed["image"] = {"url": image}
        return {"embeds": [embed]}

    if kind == "image":
        if not public_image_url:
            return None
        return {"embeds": [{"image": {"url": public_image_url}}]}

    return {"content": f"Update: {kind}"}


def image_path_for(content: Any) -> str | None:
    """Storage path of the image attached to an update (image content or text with image)."""
    if not isinstance(content, dict):
        return None
    if content.get("type") == "image":
        return _text(content.get("path")) or None
    image = content.get("image")
    if isinstance(image, dict):
        return _text(image.get("path")) or None
    return None


class ChatWebhookClient:
    def __init__(self, timeout: float = 10.0, transport: httpx.BaseTransport | None = None):
        self._timeout = timeout
        self._transport = transport

    def post(self, webhook_url: str, payload: dict) -> tuple[bool, int]:
        """POST payload as JSON. Returns (ok, status); status 0 on transport failure."""
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                resp = client.post(webhook_url, json=payload)
            if resp.is_success:
                return True, resp.status_code
            logger.warning("Chat webhook returned %s: %s", resp.status_code, resp.text[:200])
            return False, resp.status_code
        except httpx.HTTPError as e:
            logger.warning("Chat webhook request failed: %s", e)
            return False, 0
