from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union


@dataclass(frozen=True)
class StoredMessage:
    message_id: int
    chat_id: int
    user_id: int
    text: str
    date: datetime
    aggregated_text: str | None = None

    @property
    def context_text(self) -> str:
        if self.aggregated_text:
            return self.aggregated_text
        return self.text


MEDIA_KIND_PHOTO = "photo"
MEDIA_KIND_STICKER = "sticker"
MEDIA_KIND_ANIMATION = "animation"
MEDIA_KIND_DOCUMENT = "document"


@dataclass(frozen=True)
class MediaDescriptor:
    file_id: str
    kind: str
    mime_type: str | None = None
    file_name: str | None = None
    fallback_file_id: str | None = None


@dataclass(frozen=True)
class RoutingDecision:
    use_web_search: bool
    model: str
    reasoning: str | None
    verbosity: str | None
    history_limit: int


# Completion message content. A message carries either plain text or an
# ordered list of segments; both render to and parse from the OpenAI wire shape.


@dataclass(frozen=True)
class TextSegment:
    text: str

    def to_wire(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True)
class ImageUrlSegment:
    url: str

    def to_wire(self) -> dict[str, Any]:
        return {"type": "image_url", "image_url": {"url": self.url}}


Segment = Union[TextSegment, ImageUrlSegment]


@dataclass(frozen=True)
class TextContent:
    text: str

    def to_wire(self) -> Any:
        return self.text

    def as_text(self) -> str:
        return self.text


@dataclass(frozen=True)
class MultipartContent:
    segments: tuple[Segment, ...] = field(default_factory=tuple)

    def to_wire(self) -> Any:
        return [segment.to_wire() for segment in self.segments]

    def as_text(self) -> str:
        return "".join(segment.text for segment in self.segments if isinstance(segment, TextSegment))


MessageContent = Union[TextContent, MultipartContent]


def content_from_wire(raw: Any) -> MessageContent:
    if raw is None:
        return TextContent("")
    if isinstance(raw, str):
        return TextContent(raw)
    if isinstance(raw, list):
        segments: list[Segment] = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            kind = item.get("type")
            if kind == "text" and isinstance(item.get("text"), str):
                segments.append(TextSegment(item["text"]))
            elif kind == "image_url":
                image_url = item.get("image_url") or {}
                url = image_url.get("url") if isinstance(image_url, dict) else image_url
                if isinstance(url, str):
                    segments.append(ImageUrlSegment(url))
        return MultipartContent(tuple(segments))
    return TextContent(str(raw))


def build_user_content(text: str, data_urls: list[str]) -> MessageContent:
    if not data_urls:
        return TextContent(text)
    segments: list[Segment] = []
    if text:
        segments.append(TextSegment(text))
    segments.extend(ImageUrlSegment(url) for url in data_urls)
    return MultipartContent(tuple(segments))


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: MessageContent

    def to_wire(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content.to_wire()}
