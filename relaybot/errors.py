from __future__ import annotations


class RelayError(Exception):
    """Base exception for the relay pipeline."""


class MediaError(RelayError):
    """Raised when an attachment cannot be turned into model input."""


class MediaTooLarge(MediaError):
    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"image too large ({size} bytes), limit is {limit} bytes")
        self.size = size
        self.limit = limit


class UnsupportedMediaType(MediaError):
    def __init__(self, content_type: str) -> None:
        super().__init__(f"unsupported media type: {content_type}")
        self.content_type = content_type


class NoSupportedMedia(MediaError):
    def __init__(self) -> None:
        super().__init__("no supported media found")


class MediaDownloadFailed(MediaError):
    """Raised when Telegram file info or file bytes cannot be fetched."""


class InvalidDuration(MediaError):
    """Raised when a video container reports a non-positive or unreadable duration."""


class FrameExtractionFailed(MediaError):
    """Raised when the frame tool is missing or fails outright."""


class NoFramesExtracted(MediaError):
    def __init__(self) -> None:
        super().__init__("no video frames extracted")


class CompletionCallFailed(RelayError):
    """Raised when the completion API cannot produce a usable response."""


class RoutingCallFailed(RelayError):
    """Raised when the routing model call fails; callers fall back to no search."""


class EmptySummary(RelayError):
    def __init__(self) -> None:
        super().__init__("empty aggregation response")


class PromptNotFound(RelayError):
    def __init__(self, prompt_type: int) -> None:
        super().__init__(f"no prompt found with type = {prompt_type}")
        self.prompt_type = prompt_type
