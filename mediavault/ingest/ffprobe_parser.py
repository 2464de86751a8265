from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Tuple

__all__ = [
    "HDR_DOLBY_VISION",
    "HDR_HDR10",
    "HDR_HDR10_PLUS",
    "HDR_HLG",
    "HDR_GENERIC",
    "HdrInfo",
    "StreamCounts",
    "VideoMetadataFields",
    "classify_hdr",
    "count_streams",
    "parse_bit_depth",
    "parse_frame_rate",
    "parse_video_metadata",
    "select_audio_stream",
    "select_video_stream",
]

StreamType = Literal["video", "audio", "data", "subtitle", "other"]

HDR_DOLBY_VISION = "Dolby Vision"
HDR_HDR10_PLUS = "HDR10+"
HDR_HDR10 = "HDR10"
HDR_HLG = "HLG"
HDR_GENERIC = "HDR"

_DOLBY_VISION_TAGS = ("dolby_vision_version", "dolby_vision", "dovi")
_HDR10_PLUS_TAGS = ("hdrgainmap", "hdr10plus", "hdr10+")
_GENERIC_HDR_TAGS = ("hdr",)


@dataclass(slots=True)
class HdrInfo:
    is_hdr: bool
    format: Optional[str] = None


@dataclass(slots=True)
class StreamCounts:
    video: int = 0
    audio: int = 0
    subtitle: int = 0


@dataclass(slots=True)
class VideoMetadataFields:
    """Decoded ffprobe output, one attribute per ``video_metadata`` column."""

    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = None
    video_codec: Optional[str] = None
    video_bitrate: Optional[int] = None
    audio_codec: Optional[str] = None
    audio_bitrate: Optional[int] = None
    audio_sample_rate: Optional[int] = None
    audio_channels: Optional[int] = None
    frame_rate: Optional[float] = None
    pixel_format: Optional[str] = None
    color_space: Optional[str] = None
    color_primaries: Optional[str] = None
    color_transfer: Optional[str] = None
    color_range: Optional[str] = None
    is_hdr: bool = False
    hdr_format: Optional[str] = None
    bit_depth: Optional[int] = None
    streams_video: int = 0
    streams_audio: int = 0
    streams_subtitle: int = 0
    total_bitrate: Optional[int] = None
    raw_metadata: Optional[Dict[str, Any]] = None


def parse_video_metadata(raw: Dict[str, Any]) -> VideoMetadataFields:
    """Normalise ffprobe JSON (``-show_format -show_streams``) into metadata fields.

    Args:
        raw: The decoded ffprobe JSON document.

    Returns:
        The decoded fields. Values ffprobe did not report are ``None``.
    """
    format_info = raw.get("format") or {}
    format_tags = _normalise_tags(format_info.get("tags"))
    streams = [stream for stream in raw.get("streams") or [] if isinstance(stream, dict)]

    video_stream = select_video_stream(streams)
    audio_stream = select_audio_stream(streams)
    counts = count_streams(streams)
    hdr = classify_hdr(video_stream, format_tags)
    total_bitrate = _int_or_none(format_info.get("bit_rate"))

    fields = VideoMetadataFields(
        duration=_parse_duration(format_info.get("duration")),
        total_bitrate=total_bitrate,
        streams_video=counts.video,
        streams_audio=counts.audio,
        streams_subtitle=counts.subtitle,
        is_hdr=hdr.is_hdr,
        hdr_format=hdr.format,
        raw_metadata=raw,
    )

    if video_stream is not None:
        video_tags = _normalise_tags(video_stream.get("tags"))
        fields.width = _positive_int_or_none(video_stream.get("width"))
        fields.height = _positive_int_or_none(video_stream.get("height"))
        fields.video_codec = _str_or_none(video_stream.get("codec_name"))
        # Container-level bitrate stands in when the stream does not report its own.
        fields.video_bitrate = _int_or_none(video_stream.get("bit_rate")) or total_bitrate
        fields.frame_rate = parse_frame_rate(video_stream)
        fields.pixel_format = _str_or_none(video_stream.get("pix_fmt"))
        fields.color_space = _str_or_none(video_stream.get("color_space")) or _str_or_none(
            _tag(video_tags, "color_space")
        )
        fields.color_primaries = _str_or_none(video_stream.get("color_primaries"))
        fields.color_transfer = _str_or_none(video_stream.get("color_transfer"))
        fields.color_range = _str_or_none(video_stream.get("color_range"))
        fields.bit_depth = parse_bit_depth(video_stream)

    if audio_stream is not None:
        fields.audio_codec = _str_or_none(audio_stream.get("codec_name"))
        fields.audio_bitrate = _int_or_none(audio_stream.get("bit_rate"))
        fields.audio_sample_rate = _int_or_none(audio_stream.get("sample_rate"))
        fields.audio_channels = _int_or_none(audio_stream.get("channels"))

    return fields


def classify_hdr(video_stream: Optional[Dict[str, Any]], format_tags: Optional[Dict[str, str]] = None) -> HdrInfo:
    """Classify the dynamic range of a video stream.

    Best-effort: explicit markers win over colour metadata, and the first rule
    that matches decides the format.

    1. Dolby Vision tags or DOVI side data.
    2. HDR10+ tags or SMPTE 2094-40 dynamic metadata side data.
    3. PQ transfer (``smpte2084``) is HDR10.
    4. HLG transfer (``arib-std-b67``) is HLG.
    5. BT.2020 primaries without one of the above transfers is still HDR10.
    6. A generic ``hdr`` tag.

    Transfer outranks primaries: an HLG stream with BT.2020 primaries is
    labelled HLG, never HDR10.

    Args:
        video_stream: The selected ffprobe video stream, if any.
        format_tags: Container-level tags.

    Returns:
        Whether the stream is HDR and, if so, its format label.
    """
    if video_stream is None:
        return HdrInfo(is_hdr=False)

    stream_tags = _normalise_tags(video_stream.get("tags"))
    container_tags = {key.lower(): value for key, value in (format_tags or {}).items()}
    side_data_types = _side_data_types(video_stream)

    def has_tag(names: Tuple[str, ...]) -> bool:
        return any(_tag(stream_tags, name) or container_tags.get(name) for name in names)

    if has_tag(_DOLBY_VISION_TAGS) or any("dovi" in kind or "dolby vision" in kind for kind in side_data_types):
        return HdrInfo(is_hdr=True, format=HDR_DOLBY_VISION)

    if has_tag(_HDR10_PLUS_TAGS) or any("2094-40" in kind or "hdr10+" in kind for kind in side_data_types):
        return HdrInfo(is_hdr=True, format=HDR_HDR10_PLUS)

    transfer = (_str_or_none(video_stream.get("color_transfer")) or "").lower()
    primaries = (_str_or_none(video_stream.get("color_primaries")) or "").lower()

    if transfer == "smpte2084":
        return HdrInfo(is_hdr=True, format=HDR_HDR10)
    if transfer == "arib-std-b67":
        return HdrInfo(is_hdr=True, format=HDR_HLG)
    if primaries == "bt2020":
        return HdrInfo(is_hdr=True, format=HDR_HDR10)

    if has_tag(_GENERIC_HDR_TAGS):
        return HdrInfo(is_hdr=True, format=HDR_GENERIC)

    return HdrInfo(is_hdr=False)


def parse_frame_rate(video_stream: Optional[Dict[str, Any]]) -> Optional[float]:
    """Return frames per second from ``r_frame_rate`` then ``avg_frame_rate``.

    Args:
        video_stream: The ffprobe video stream.

    Returns:
        The frame rate, or None when neither field holds a usable rational.
    """
    if video_stream is None:
        return None
    for key in ("r_frame_rate", "avg_frame_rate"):
        rate = _parse_rational(video_stream.get(key))
        if rate is not None and rate > 0:
            return rate
    return None


def parse_bit_depth(video_stream: Optional[Dict[str, Any]]) -> Optional[int]:
    """Return the sample bit depth of a video stream.

    Args:
        video_stream: The ffprobe video stream.

    Returns:
        The declared bit depth, else one inferred from the pixel format, else None.
    """
    if video_stream is None:
        return None
    for key in ("bits_per_raw_sample", "bits_per_sample"):
        value = _positive_int_or_none(video_stream.get(key))
        if value is not None:
            return value

    pix_fmt = (_str_or_none(video_stream.get("pix_fmt")) or "").lower()
    if not pix_fmt:
        return None
    if "p10" in pix_fmt or "10bit" in pix_fmt:
        return 10
    if "p12" in pix_fmt or "12bit" in pix_fmt:
        return 12
    if "p8" in pix_fmt or "8bit" in pix_fmt or pix_fmt == "yuv420p":
        return 8
    return None


def select_video_stream(streams: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Select the video stream to describe the asset.

    Cover art (``attached_pic``) is ignored. A stream flagged as default wins,
    otherwise the one with the largest frame.

    Args:
        streams: The ffprobe streams.

    Returns:
        The selected video stream, or None if there is none.
    """
    candidates = [
        stream
        for stream in streams
        if _normalise_stream_type(stream.get("codec_type")) == "video"
        and not _disposition_flag(stream.get("disposition"), "attached_pic")
    ]
    if not candidates:
        return None

    default_streams = [stream for stream in candidates if _disposition_flag(stream.get("disposition"), "default")]
    if default_streams:
        return default_streams[0]

    def score(item: Dict[str, Any]) -> int:
        width = _int_or_none(item.get("width")) or 0
        height = _int_or_none(item.get("height")) or 0
        return width * height

    return max(candidates, key=score)


def select_audio_stream(streams: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Select the audio stream to describe the asset.

    Args:
        streams: The ffprobe streams.

    Returns:
        The default audio stream, else the first one, else None.
    """
    candidates = [stream for stream in streams if _normalise_stream_type(stream.get("codec_type")) == "audio"]
    if not candidates:
        return None
    for stream in candidates:
        if _disposition_flag(stream.get("disposition"), "default"):
            return stream
    return candidates[0]


def count_streams(streams: List[Dict[str, Any]]) -> StreamCounts:
    counts = StreamCounts()
    for stream in streams:
        stream_type = _normalise_stream_type(stream.get("codec_type"))
        if stream_type == "video":
            counts.video += 1
        elif stream_type == "audio":
            counts.audio += 1
        elif stream_type == "subtitle":
            counts.subtitle += 1
    return counts


def _normalise_tags(tags: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Normalise ffprobe tags.

    Args:
        tags: The ffprobe tags.

    Returns:
        The normalised tags.
    """
    if not tags:
        return {}
    normalised: Dict[str, str] = {}
    for key, value in tags.items():
        if value is None:
            continue
        if isinstance(value, str):
            normalised[key] = value
        else:
            normalised[key] = json.dumps(value) if isinstance(value, (dict, list)) else str(value)
    return normalised


def _tag(tags: Dict[str, str], name: str) -> Optional[str]:
    """Case-insensitive tag lookup; ffprobe preserves whatever case the muxer wrote."""
    for key, value in tags.items():
        if key.lower() == name and value:
            return value
    return None


def _side_data_types(stream: Dict[str, Any]) -> List[str]:
    entries = stream.get("side_data_list") or []
    kinds: List[str] = []
    for entry in entries:
        if isinstance(entry, dict) and entry.get("side_data_type"):
            kinds.append(str(entry["side_data_type"]).lower())
        if isinstance(entry, dict) and "dv_profile" in entry:
            kinds.append("dovi configuration record")
    return kinds


def _parse_duration(raw_value: Any) -> Optional[float]:
    """Parse the duration from ffprobe.

    Args:
        raw_value: The raw duration value.

    Returns:
        The duration in seconds, or None if it's not available.
    """
    if raw_value in (None, "N/A", ""):
        return None
    try:
        duration = float(raw_value)
    except (TypeError, ValueError):
        return None
    if math.isnan(duration) or duration < 0:
        return None
    return duration


def _normalise_stream_type(value: Any) -> StreamType:
    """Normalise the stream type.

    Args:
        value: The raw stream type.

    Returns:
        The normalised stream type.
    """
    if not isinstance(value, str):
        return "other"
    value_lower = value.lower()
    if value_lower in {"video", "audio", "data", "subtitle"}:
        return value_lower  # type: ignore[return-value]
    return "other"


def _int_or_none(value: Any) -> Optional[int]:
    """Return an integer or None.

    Args:
        value: The raw value.

    Returns:
        The integer value, or None if it's not a valid integer.
    """
    if value in (None, "N/A", ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _positive_int_or_none(value: Any) -> Optional[int]:
    parsed = _int_or_none(value)
    if parsed is None or parsed <= 0:
        return None
    return parsed


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text in {"N/A", "unknown"}:
        return None
    return text


def _disposition_flag(disposition: Any, name: str) -> bool:
    """Return whether a disposition flag is set.

    Args:
        disposition: The disposition dictionary.
        name: The flag to read.

    Returns:
        True if ffprobe reported the flag as set.
    """
    if not isinstance(disposition, dict):
        return False
    return bool(disposition.get(name))


def _parse_rational(value: Optional[str]) -> Optional[float]:
    """Parse a rational number.

    Args:
        value: The rational number as a string.

    Returns:
        The parsed rational number, or None if it's not valid.
    """
    if not value or value in {"0/0", "N/A"}:
        return None
    if "/" not in value:
        # Already a float string.
        try:
            return round(float(value), 3)
        except ValueError:
            return None
    numerator_str, denominator_str = value.split("/", 1)
    try:
        numerator = float(numerator_str)
        denominator = float(denominator_str)
    except ValueError:
        return None
    if math.isclose(denominator, 0.0):
        return None
    return round(numerator / denominator, 3)
