from __future__ import annotations

import asyncio
import io
import logging
import os
import shutil
import tempfile
from typing import Protocol

from PIL import Image

from relaybot.errors import FrameExtractionFailed, InvalidDuration, MediaError, NoFramesExtracted

logger = logging.getLogger("media")

VIDEO_FRAME_OFFSETS = (0.2, 0.5, 0.8)
VIDEO_EDGE_MARGIN = 0.05


def gif_frame_indices(frame_count: int) -> list[int]:
    """Second, middle and second-to-last frame; short GIFs repeat indices."""
    if frame_count <= 0:
        return []
    second = 1 if frame_count > 1 else 0
    middle = frame_count // 2
    pre_last = frame_count - 2 if frame_count > 1 else 0
    return [second, middle, pre_last]


def clamp_video_timestamp(timestamp: float, duration: float) -> float:
    if duration <= 0:
        return 0.0
    low = VIDEO_EDGE_MARGIN
    high = duration - VIDEO_EDGE_MARGIN
    if high < low:
        low, high = 0.0, duration
    return min(max(timestamp, low), high)


def video_frame_timestamps(duration: float) -> list[float]:
    if duration <= 0:
        return []
    return [clamp_video_timestamp(duration * offset, duration) for offset in VIDEO_FRAME_OFFSETS]


# Errors Pillow raises for corrupt, truncated or oversized images
PIL_DECODE_ERRORS = (OSError, ValueError, IndexError, EOFError, Image.DecompressionBombError)


def gif_frames_to_png(data: bytes) -> list[bytes]:
    frames: list[bytes] = []
    try:
        with Image.open(io.BytesIO(data)) as image:
            frame_count = getattr(image, "n_frames", 1)
            for idx in gif_frame_indices(frame_count):
                image.seek(idx)
                buffer = io.BytesIO()
                image.convert("RGBA").save(buffer, format="PNG")
                frames.append(buffer.getvalue())
    except PIL_DECODE_ERRORS as exc:
        raise MediaError(f"failed to decode gif: {exc}") from exc

    if not frames:
        raise MediaError("gif has no usable frames")
    return frames


class FrameExtractor(Protocol):
    async def probe_duration(self, path: str) -> float: ...

    async def extract_frame(self, path: str, timestamp: float) -> bytes: ...


class FfmpegFrameExtractor:
    """Delegates duration probing and still-frame decoding to ffprobe/ffmpeg."""

    def __init__(self, timeout_sec: float = 20.0, ffmpeg: str = "ffmpeg", ffprobe: str = "ffprobe") -> None:
        self._timeout = timeout_sec
        self._ffmpeg = ffmpeg
        self._ffprobe = ffprobe

    def check_tools(self) -> None:
        if not shutil.which(self._ffmpeg):
            raise FrameExtractionFailed("ffmpeg not available")
        if not shutil.which(self._ffprobe):
            raise FrameExtractionFailed("ffprobe not available")

    async def _run(self, *args: str) -> tuple[int, bytes, bytes]:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise FrameExtractionFailed(f"{args[0]} timed out after {self._timeout}s") from exc
        return proc.returncode or 0, stdout, stderr

    async def probe_duration(self, path: str) -> float:
        self.check_tools()
        code, stdout, stderr = await self._run(
            self._ffprobe,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            path,
        )
        if code != 0:
            raise FrameExtractionFailed(f"ffprobe failed: {stderr.decode('utf-8', errors='ignore').strip()}")
        value = stdout.decode("utf-8", errors="ignore").strip()
        if not value:
            raise InvalidDuration("ffprobe returned empty duration")
        try:
            duration = float(value)
        except ValueError as exc:
            raise InvalidDuration(f"invalid duration: {value}") from exc
        if duration <= 0:
            raise InvalidDuration(f"invalid duration: {duration:.4f}")
        return duration

    async def extract_frame(self, path: str, timestamp: float) -> bytes:
        code, stdout, stderr = await self._run(
            self._ffmpeg,
            "-v", "error",
            "-ss", f"{timestamp:.3f}",
            "-i", path,
            "-frames:v", "1",
            "-f", "image2pipe",
            "-vcodec", "png",
            "pipe:1",
        )
        if code != 0:
            raise FrameExtractionFailed(f"ffmpeg failed: {stderr.decode('utf-8', errors='ignore').strip()}")
        if not stdout:
            raise FrameExtractionFailed("ffmpeg returned empty frame")
        return stdout


async def video_frames_to_png(data: bytes, extractor: FrameExtractor) -> list[bytes]:
    fd, path = tempfile.mkstemp(prefix="tg-video-", suffix=".mp4")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)

        duration = await extractor.probe_duration(path)
        timestamps = video_frame_timestamps(duration)
        if not timestamps:
            raise InvalidDuration("video duration is invalid")

        frames: list[bytes] = []
        for timestamp in timestamps:
            try:
                frames.append(await extractor.extract_frame(path, timestamp))
            except FrameExtractionFailed as exc:
                logger.warning("Frame skipped timestamp=%.3f: %s", timestamp, exc)
        if not frames:
            raise NoFramesExtracted()
        return frames
    finally:
        try:
            os.remove(path)
        except OSError:
            logger.warning("Failed to remove temp video %s", path)
