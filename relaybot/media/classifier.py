from __future__ import annotations

from typing import Any

from relaybot.models import (
    MEDIA_KIND_ANIMATION,
    MEDIA_KIND_DOCUMENT,
    MEDIA_KIND_PHOTO,
    MEDIA_KIND_STICKER,
    MediaDescriptor,
)

VIDEO_EXTENSIONS = (".mp4", ".webm", ".mov", ".mkv", ".avi")


def _is_image_document(document: Any) -> bool:
    mime_type = (document.mime_type or "").lower()
    file_name = (document.file_name or "").lower()
    return mime_type.startswith("image/") or file_name.endswith(".gif")


def has_supported_media(message: Any) -> bool:
    if message is None:
        return False
    if message.photo:
        return True
    if message.sticker is not None:
        return not message.sticker.is_animated
    if message.animation is not None:
        return True
    if message.document is not None:
        return _is_image_document(message.document)
    return False


def extract_media_items(message: Any) -> list[MediaDescriptor]:
    """Normalise the visual attachment of one message; unsupported input yields []."""
    if message is None:
        return []

    if message.photo:
        # Telegram orders photo sizes ascending, the last one is the largest
        photo = message.photo[-1]
        return [MediaDescriptor(file_id=photo.file_id, kind=MEDIA_KIND_PHOTO)]

    if message.sticker is not None:
        sticker = message.sticker
        if sticker.is_animated:
            return []
        mime_type = "video/webm" if getattr(sticker, "is_video", False) else None
        return [MediaDescriptor(file_id=sticker.file_id, kind=MEDIA_KIND_STICKER, mime_type=mime_type)]

    if message.animation is not None:
        animation = message.animation
        thumbnail = getattr(animation, "thumbnail", None)
        return [
            MediaDescriptor(
                file_id=animation.file_id,
                kind=MEDIA_KIND_ANIMATION,
                mime_type=animation.mime_type,
                file_name=animation.file_name,
                fallback_file_id=thumbnail.file_id if thumbnail is not None else None,
            )
        ]

    if message.document is not None and _is_image_document(message.document):
        document = message.document
        return [
            MediaDescriptor(
                file_id=document.file_id,
                kind=MEDIA_KIND_DOCUMENT,
                mime_type=document.mime_type,
                file_name=document.file_name,
            )
        ]

    return []


def is_video_by_meta(mime_type: str | None, file_name: str | None) -> bool:
    if (mime_type or "").lower().startswith("video/"):
        return True
    return (file_name or "").lower().endswith(VIDEO_EXTENSIONS)
