"""Deterministic assembly of the message list sent to a provider."""
from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Sequence

from ...errors import ErrorKind, GenerationError
from .types import Attachment, Role, TurnMessage

MAX_IMAGE_ATTACHMENTS = 4

_HISTORY_ROLES = {Role.USER.value, Role.ASSISTANT.value}


def _history_messages(history: Iterable[Any]) -> List[TurnMessage]:
    messages: List[TurnMessage] = []
    for entry in history or []:
        if isinstance(entry, TurnMessage):
            role, content = entry.role.value, entry.content
        elif isinstance(entry, Mapping):
            role, content = entry.get("role"), entry.get("content")
        else:
            role = getattr(entry, "role", None)
            content = getattr(entry, "content", None)
        if isinstance(role, Role):
            role = role.value
        if role not in _HISTORY_ROLES or not isinstance(content, str):
            continue
        content = content.strip()
        if not content:
            continue
        messages.append(TurnMessage(role=Role(role), content=content))
    return messages


def image_attachments(attachments: Sequence[Attachment]) -> List[Attachment]:
    """Keep image attachments with a URL, capped at :data:`MAX_IMAGE_ATTACHMENTS`."""

    images = [item for item in attachments or [] if item.url and item.is_image]
    return images[:MAX_IMAGE_ATTACHMENTS]


def _current_turn(
    text: str, attachments: Sequence[Attachment], supports_vision: bool
) -> TurnMessage:
    images = image_attachments(attachments)
    if supports_vision and images:
        return TurnMessage(
            role=Role.USER,
            content=text,
            images=tuple(item.url for item in images),
        )
    if images:
        text = (
            f"[Note: User attached {len(images)} image(s), but this model cannot "
            f"process images.]\n\n{text}"
        )
    return TurnMessage(role=Role.USER, content=text)


def assemble_conversation(
    system_text: Optional[str],
    history: Iterable[Any],
    current_turn: Optional[Any] = None,
    *,
    attachments: Sequence[Attachment] = (),
    supports_vision: bool = False,
) -> List[TurnMessage]:
    """Build the ordered message list: system, prior turns, current turn.

    Malformed history entries (unknown role, non-string or blank content)
    are dropped. Raises ``INVALID_REQUEST`` when nothing is left to send.
    """

    messages: List[TurnMessage] = []

    system_content = (system_text or "").strip()
    if system_content:
        messages.append(TurnMessage(role=Role.SYSTEM, content=system_content))

    messages.extend(_history_messages(history))

    turn = "" if current_turn is None else str(current_turn).strip()
    if turn:
        messages.append(_current_turn(turn, attachments, supports_vision))

    if not messages:
        raise GenerationError(
            ErrorKind.INVALID_REQUEST,
            "No content to send to the model. Both the prompt template and user "
            "message resulted in empty content after processing.",
        )
    return messages


__all__ = ["MAX_IMAGE_ATTACHMENTS", "assemble_conversation", "image_attachments"]
