"""
Inbound message validation and conversion to provider input items.
"""
import json
import re
from typing import Any, Dict, Iterable, List, Optional, Union

from switchyard_service.core.errors import InvalidRequestError
from switchyard_service.core.types import MEDIA_SEGMENT_TYPES, ConversationMessage, Segment

ROLES = {"user", "assistant"}
MAX_MEDIA_BYTES = 50 * 1024 * 1024

_INLINE_IMAGE = re.compile(r"!\[[^\]]*\]\(data:image/[a-zA-Z0-9.+-]+;base64,[A-Za-z0-9+/=\s]+\)")
IMAGE_PLACEHOLDER = "[image]"


def sanitize_content(text: str) -> str:
    """Replace inline base64 markdown images, which only waste context."""
    return _INLINE_IMAGE.sub(IMAGE_PLACEHOLDER, text)


def _payload_size(content: Any) -> int:
    return len(json.dumps(content, default=str).encode("utf-8"))


def _check_media(seg: Segment, where: str) -> None:
    kind = seg["type"]
    if kind == "file":
        f = seg.get("file")
        if not isinstance(f, dict):
            raise InvalidRequestError(f"{where}.file must be an object")
        if "file_data" in f and not isinstance(f["file_data"], str):
            raise InvalidRequestError(f"{where}.file.file_data must be a string")
        return

    key = "image_url" if kind in ("image_url", "url_image") else "document_url"
    value = seg.get(key)
    if value is None:
        value = seg.get("url")
    if isinstance(value, dict):
        value = value.get("url")
    if value is not None and not isinstance(value, str):
        raise InvalidRequestError(f"{where}.{key} must be a URL string or an object with a url")


def validate_messages(
    raw: Iterable[Union[ConversationMessage, Dict[str, Any]]],
    max_messages: int = 100,
    max_message_chars: int = 100_000,
    max_total_bytes: int = MAX_MEDIA_BYTES,
) -> List[ConversationMessage]:
    """
    Check and normalize the inbound history.

    Raises:
        InvalidRequestError: on an empty or oversized history, an unknown role,
            or malformed content.
    """
    items = list(raw or [])
    if not items:
        raise InvalidRequestError("messages must contain at least one message")
    if len(items) > max_messages:
        raise InvalidRequestError(f"Too many messages (max {max_messages})")

    messages: List[ConversationMessage] = []
    total = 0
    for idx, item in enumerate(items):
        if isinstance(item, ConversationMessage):
            role, content = item.role, item.content
        elif isinstance(item, dict):
            role, content = item.get("role"), item.get("content")
        else:
            raise InvalidRequestError(f"messages[{idx}] is not an object")

        if role not in ROLES:
            raise InvalidRequestError(f"messages[{idx}].role must be one of {sorted(ROLES)}")

        if isinstance(content, str):
            if len(content) > max_message_chars:
                raise InvalidRequestError(f"messages[{idx}] is too long (max {max_message_chars} characters)")
            content = sanitize_content(content)
            total += len(content.encode("utf-8"))
        elif isinstance(content, (list, tuple)):
            if not all(isinstance(seg, dict) and isinstance(seg.get("type"), str) for seg in content):
                raise InvalidRequestError(f"messages[{idx}].content segments must be objects with a type")
            for pos, seg in enumerate(content):
                if seg["type"] in MEDIA_SEGMENT_TYPES:
                    _check_media(seg, f"messages[{idx}].content[{pos}]")
            has_media = any(seg["type"] in MEDIA_SEGMENT_TYPES for seg in content)
            size = _payload_size(list(content))
            limit = max_total_bytes if has_media else max_message_chars
            if size > limit:
                raise InvalidRequestError(f"messages[{idx}] is too large")
            content = [
                {**seg, "text": sanitize_content(seg["text"])}
                if seg["type"] == "text" and isinstance(seg.get("text"), str) else seg
                for seg in content
            ]
            total += size
        else:
            raise InvalidRequestError(f"messages[{idx}].content must be a string or a list of segments")

        if total > max_total_bytes:
            raise InvalidRequestError("Request payload too large")
        messages.append(ConversationMessage.create(role, content))
    return messages


def _segment_url(seg: Segment, key: str) -> Optional[str]:
    value = seg.get(key)
    if isinstance(value, dict):
        value = value.get("url")
    if not value:
        value = seg.get("url")
    return value if isinstance(value, str) and value else None


def _user_part(seg: Segment) -> Optional[Dict[str, Any]]:
    kind = seg.get("type")
    if kind == "text":
        text = seg.get("text")
        return {"type": "input_text", "text": text} if isinstance(text, str) and text.strip() else None
    if kind in ("image_url", "url_image"):
        url = _segment_url(seg, "image_url")
        return {"type": "input_image", "image_url": url, "detail": "auto"} if url else None
    if kind == "file":
        f = seg.get("file")
        if isinstance(f, dict) and f.get("file_data"):
            return {"type": "input_file", "filename": f.get("filename", "file"), "file_data": f["file_data"]}
        return None
    if kind == "url_document":
        url = _segment_url(seg, "document_url")
        return {"type": "input_file", "file_url": url} if url else None
    return None


def to_provider_input(messages: Iterable[ConversationMessage]) -> List[Dict[str, Any]]:
    """Convert the history to Responses API input items, keeping segment order."""
    items: List[Dict[str, Any]] = []
    for message in messages:
        if message.role == "assistant":
            text = message.text()
            if text.strip():
                items.append({"role": "assistant", "content": [{"type": "output_text", "text": text}]})
            continue

        parts = [p for p in (_user_part(seg) for seg in message.segments) if p is not None]
        if parts:
            items.append({"role": "user", "content": parts})
    return items
