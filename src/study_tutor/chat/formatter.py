"""Normalizes client chat history into reasoning-service turns."""

from __future__ import annotations

import logging

from study_tutor.chat.models import HistoryEntry, MediaAttachment
from study_tutor.types import ConversationTurn, MediaPart, Part, TextPart

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/jpeg"

_PLACEHOLDERS: dict[str, dict[str, str]] = {
    "english": {
        "user": "[User's previous image content is unavailable in history]",
        "model": "[Previous model response content is unavailable or was empty]",
    },
    "italian": {
        "user": "[Il contenuto dell'immagine inviata in precedenza non è disponibile]",
        "model": "[La risposta precedente non è disponibile o era vuota]",
    },
}

_IMAGE_ONLY_PROMPTS: dict[str, str] = {
    "english": "Please analyze this image",
    "italian": "Potresti analizzare questa immagine per favore?",
}


def _lang_key(language: str | None) -> str:
    key = (language or "english").strip().lower()
    return key if key in _PLACEHOLDERS else "english"


def media_parts(attachments: list[MediaAttachment] | None) -> list[Part]:
    """Inline image parts for every attachment that carries data."""

    parts: list[Part] = []
    for media in attachments or []:
        if media.type == "image" and media.data:
            parts.append(MediaPart(mime_type=media.mime_type or DEFAULT_MIME_TYPE, data=media.data))
    return parts


def format_history(
    entries: list[HistoryEntry],
    *,
    language: str | None = None,
) -> list[ConversationTurn]:
    """Map history entries to turns one-to-one, never emitting an empty turn."""

    turns: list[ConversationTurn] = []
    for entry in entries:
        role = "user" if entry.sender == "user" else "model"
        parts: list[Part] = []
        if entry.content:
            parts.append(TextPart(entry.content))
        parts.extend(media_parts(entry.media_content))

        if not parts:
            placeholder = _PLACEHOLDERS[_lang_key(language)][role]
            logger.warning(
                "History entry (role=%s, media items=%d) has no content, using placeholder",
                role,
                len(entry.media_content),
            )
            parts.append(TextPart(placeholder))

        turns.append(ConversationTurn(role=role, parts=parts))
    return turns


def build_user_turn(
    prompt: str | None,
    attachments: list[MediaAttachment] | None = None,
    *,
    language: str | None = None,
) -> ConversationTurn:
    """Build the current user turn; an image-only message gets a default request text."""

    images = media_parts(attachments)
    if prompt and prompt.strip():
        parts: list[Part] = [TextPart(prompt)]
    elif images:
        parts = [TextPart(_IMAGE_ONLY_PROMPTS[_lang_key(language)])]
    else:
        parts = [TextPart(_PLACEHOLDERS[_lang_key(language)]["user"])]
    parts.extend(images)
    return ConversationTurn(role="user", parts=parts)
