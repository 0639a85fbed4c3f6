from __future__ import annotations

import asyncio
import base64
import io
import logging
from typing import Any, Iterable

import httpx
from PIL import Image
from telegram.error import TelegramError

from relaybot.errors import MediaDownloadFailed, MediaError, MediaTooLarge, NoSupportedMedia, UnsupportedMediaType
from relaybot.media.classifier import extract_media_items, is_video_by_meta
from relaybot.media.frames import (
    PIL_DECODE_ERRORS,
    FfmpegFrameExtractor,
    FrameExtractor,
    gif_frames_to_png,
    video_frames_to_png,
)
from relaybot.models import MEDIA_KIND_ANIMATION, MediaDescriptor

DEFAULT_MAX_IMAGE_BYTES = 2 * 1024 * 1024
DEFAULT_MAX_VIDEO_BYTES = 10 * 1024 * 1024
OCTET_STREAM = "application/octet-stream"

# Checked when Pillow cannot open the data (e.g. decompression-bomb sized images)
_SIGNATURES = (
    (0, b"\x89PNG\r\n\x1a\n", "image/png"),
    (0, b"\xff\xd8\xff", "image/jpeg"),
    (8, b"WEBP", "image/webp"),
    (4, b"ftyp", "video/mp4"),
    (0, b"\x1a\x45\xdf\xa3", "video/webm"),
    (0, b"RIFF", "video/avi"),
)


def sniff_content_type(data: bytes) -> str:
    if data.startswith((b"GIF87a", b"GIF89a")):
        return "image/gif"
    try:
        with Image.open(io.BytesIO(data)) as image:
            mime = Image.MIME.get(image.format or "")
            if mime:
                return mime
    except PIL_DECODE_ERRORS:
        pass
    for offset, signature, mime in _SIGNATURES:
        if data[offset : offset + len(signature)] == signature:
            return mime
    return OCTET_STREAM


def is_gif(data: bytes, content_type: str) -> bool:
    if "gif" in content_type.lower():
        return True
    return data.startswith((b"GIF87a", b"GIF89a"))


def to_data_url(data: bytes, content_type: str) -> str:
    if not content_type:
        content_type = "image/jpeg"
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{content_type};base64,{encoded}"


def _header_content_type(response: httpx.Response) -> str:
    return response.headers.get("content-type", "").split(";", 1)[0].strip()


class MediaMaterializer:
    """Downloads Telegram attachments and turns them into inlineable images."""

    def __init__(
        self,
        bot: Any,
        http_client: httpx.AsyncClient,
        frame_extractor: FrameExtractor | None = None,
        *,
        max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
        max_video_bytes: int = DEFAULT_MAX_VIDEO_BYTES,
    ) -> None:
        self._bot = bot
        self._http = http_client
        self._frames = frame_extractor or FfmpegFrameExtractor()
        self._max_image_bytes = max_image_bytes
        self._max_video_bytes = max_video_bytes
        self._logger = logging.getLogger("media")

    async def download_as_data_urls(self, messages: Iterable[Any]) -> list[str]:
        urls: list[str] = []
        for message in messages:
            for item in extract_media_items(message):
                urls.extend(await self.download_item(item))
        if not urls:
            raise NoSupportedMedia()
        return urls

    async def download_item(self, item: MediaDescriptor) -> list[str]:
        is_video = item.kind == MEDIA_KIND_ANIMATION or is_video_by_meta(item.mime_type, item.file_name)
        max_size = self._max_video_bytes if is_video else self._max_image_bytes

        data, content_type = await self.download_file_bytes(item.file_id, max_size)
        self._logger.info(
            "Media downloaded kind=%s bytes=%s content_type=%s video=%s",
            item.kind,
            len(data),
            content_type,
            is_video,
        )

        if is_video or content_type.lower().startswith("video/"):
            try:
                frames = await video_frames_to_png(data, self._frames)
            except MediaError as exc:
                if not item.fallback_file_id:
                    raise
                self._logger.warning("Frame extraction failed kind=%s, using thumbnail: %s", item.kind, exc)
                try:
                    fallback_data, fallback_type = await self.download_file_bytes(
                        item.fallback_file_id,
                        self._max_image_bytes,
                    )
                except MediaError:
                    self._logger.exception("Thumbnail download failed file_id=%s", item.fallback_file_id)
                    raise exc
                return await self.file_data_to_data_urls(fallback_data, fallback_type)
            return [to_data_url(frame, "image/png") for frame in frames]

        return await self.file_data_to_data_urls(data, content_type)

    async def download_file_bytes(self, file_id: str, max_size: int) -> tuple[bytes, str]:
        try:
            telegram_file = await self._bot.get_file(file_id)
        except TelegramError as exc:
            raise MediaDownloadFailed(f"failed to get file info from Telegram: {exc}") from exc
        if not telegram_file.file_path:
            raise MediaDownloadFailed("Telegram returned no download path")

        chunks: list[bytes] = []
        received = 0
        try:
            async with self._http.stream("GET", telegram_file.file_path) as response:
                response.raise_for_status()
                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and max_size > 0 and int(declared) > max_size:
                    raise MediaTooLarge(int(declared), max_size)
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    if max_size > 0 and received > max_size:
                        raise MediaTooLarge(received, max_size)
                    chunks.append(chunk)
                header_type = _header_content_type(response)
        except httpx.HTTPError as exc:
            raise MediaDownloadFailed(f"failed to download image: {exc}") from exc

        data = b"".join(chunks)
        return data, header_type or sniff_content_type(data)

    async def file_data_to_data_urls(self, data: bytes, content_type: str) -> list[str]:
        detected = sniff_content_type(data)
        if not content_type:
            content_type = detected

        if is_gif(data, content_type) or is_gif(data, detected):
            frames = await asyncio.to_thread(gif_frames_to_png, data)
            return [to_data_url(frame, "image/png") for frame in frames]

        if content_type.lower().startswith("image/") or detected.lower().startswith("image/"):
            if not content_type.lower().startswith("image/"):
                content_type = detected
            return [to_data_url(data, content_type)]

        raise UnsupportedMediaType(content_type)
