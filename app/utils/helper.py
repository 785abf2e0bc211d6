from typing import Any

from app.models import ChatReply, GenerateReply, StreamEvent

NO_RESPONSE = "(no response)"


def normalize_content(value: Any, trim: bool = True) -> str:
    """
    Collapse a backend text field into plain text.

    `None` becomes an empty string, a list of parts is joined with single spaces,
    anything else is stringified. Streaming deltas must be passed with `trim=False`
    so that whitespace between tokens survives.
    """
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        text = " ".join(_part_to_text(part) for part in value)
    elif isinstance(value, bool):
        text = "true" if value else "false"
    else:
        text = str(value)
    return text.strip() if trim else text


def _part_to_text(part: Any) -> str:
    if part is None:
        return ""
    if isinstance(part, dict) and isinstance(part.get("text"), str):
        return part["text"]
    return str(part)


def strip_data_url(value: str) -> str:
    """Return the bare base64 payload of a data URL, or the value unchanged."""
    if "," in value:
        return value.rsplit(",", 1)[1]
    return value


def is_empty_answer(text: str | None) -> bool:
    """True when a backend answer is missing or the no-response sentinel."""
    return not text or text == NO_RESPONSE


def extract_chat_answer(reply: ChatReply) -> str:
    """Prefer `message.content`, then the top-level `response` field."""
    if reply.message is not None:
        if answer := normalize_content(reply.message.content):
            return answer
    return normalize_content(reply.response)


def extract_generate_answer(reply: GenerateReply) -> str:
    return normalize_content(reply.response)


def extract_stream_delta(event: StreamEvent) -> str:
    """Return the untrimmed text fragment carried by one stream event."""
    if event.message is not None and event.message.content is not None:
        raw = event.message.content
    else:
        raw = event.delta
    if isinstance(raw, str):
        return raw
    return normalize_content(raw, trim=False)


def describe_image(image: str | None) -> str:
    """Short log-friendly description of an optional image payload."""
    if not image:
        return "no image"
    return f"image length={len(image)}"
