from relaybot.media.classifier import extract_media_items, has_supported_media, is_video_by_meta
from relaybot.media.frames import (
    FfmpegFrameExtractor,
    FrameExtractor,
    clamp_video_timestamp,
    gif_frame_indices,
    video_frame_timestamps,
)
from relaybot.media.groups import MediaGroupCache, collect_media_messages
from relaybot.media.materializer import MediaMaterializer, sniff_content_type, to_data_url

__all__ = [
    "FfmpegFrameExtractor",
    "FrameExtractor",
    "MediaGroupCache",
    "MediaMaterializer",
    "clamp_video_timestamp",
    "collect_media_messages",
    "extract_media_items",
    "gif_frame_indices",
    "has_supported_media",
    "is_video_by_meta",
    "sniff_content_type",
    "to_data_url",
    "video_frame_timestamps",
]
