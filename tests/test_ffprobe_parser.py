from __future__ import annotations

import copy

import pytest

from mediavault.ingest.ffprobe_parser import (
    HDR_DOLBY_VISION,
    HDR_GENERIC,
    HDR_HDR10,
    HDR_HDR10_PLUS,
    HDR_HLG,
    classify_hdr,
    parse_bit_depth,
    parse_frame_rate,
    parse_video_metadata,
    select_video_stream,
)

MP4_H264_AAC = {
    "streams": [
        {
            "index": 0,
            "codec_type": "video",
            "codec_name": "h264",
            "width": 1920,
            "height": 1080,
            "pix_fmt": "yuv420p",
            "r_frame_rate": "30000/1001",
            "avg_frame_rate": "30000/1001",
            "bit_rate": "4500000",
            "color_space": "bt709",
            "color_primaries": "bt709",
            "color_transfer": "bt709",
            "color_range": "tv",
            "bits_per_raw_sample": "8",
            "disposition": {"default": 1, "attached_pic": 0},
        },
        {
            "index": 1,
            "codec_type": "audio",
            "codec_name": "aac",
            "sample_rate": "48000",
            "channels": 2,
            "bit_rate": "128000",
            "disposition": {"default": 1},
        },
        {"index": 2, "codec_type": "subtitle", "codec_name": "mov_text"},
    ],
    "format": {"duration": "12.345000", "bit_rate": "4700000", "tags": {"major_brand": "isom"}},
}


def _hevc_stream(**overrides) -> dict:
    stream = {
        "codec_type": "video",
        "codec_name": "hevc",
        "width": 3840,
        "height": 2160,
        "pix_fmt": "yuv420p10le",
        "r_frame_rate": "24/1",
        "color_primaries": "bt709",
        "color_transfer": "bt709",
    }
    stream.update(overrides)
    return stream


def test_parse_mp4_with_audio():
    fields = parse_video_metadata(MP4_H264_AAC)

    assert (fields.width, fields.height) == (1920, 1080)
    assert fields.duration == pytest.approx(12.345)
    assert fields.video_codec == "h264"
    assert fields.video_bitrate == 4_500_000
    assert fields.frame_rate == pytest.approx(29.97)
    assert fields.pixel_format == "yuv420p"
    assert fields.color_space == "bt709"
    assert fields.bit_depth == 8
    assert fields.audio_codec == "aac"
    assert fields.audio_sample_rate == 48000
    assert fields.audio_channels == 2
    assert fields.audio_bitrate == 128000
    assert (fields.streams_video, fields.streams_audio, fields.streams_subtitle) == (1, 1, 1)
    assert fields.total_bitrate == 4_700_000
    assert fields.is_hdr is False
    assert fields.hdr_format is None
    assert fields.raw_metadata == MP4_H264_AAC


def test_parse_without_audio_and_missing_bitrates():
    raw = copy.deepcopy(MP4_H264_AAC)
    raw["streams"] = [raw["streams"][0]]
    del raw["streams"][0]["bit_rate"]
    raw["format"]["duration"] = "N/A"

    fields = parse_video_metadata(raw)

    assert fields.audio_codec is None
    assert fields.streams_audio == 0
    assert fields.duration is None
    assert fields.video_bitrate == 4_700_000



def test_empty_document_yields_empty_fields():
    fields = parse_video_metadata({})
    assert fields.width is None
    assert fields.duration is None
    assert fields.streams_video == 0


def test_cover_art_is_not_selected():
    cover = {"codec_type": "video", "width": 3000, "height": 3000, "disposition": {"attached_pic": 1}}
    main = {"codec_type": "video", "width": 640, "height": 360, "disposition": {"attached_pic": 0}}
    assert select_video_stream([cover, main]) is main


def test_largest_stream_wins_without_default():
    small = {"codec_type": "video", "width": 320, "height": 180}
    large = {"codec_type": "video", "width": 1280, "height": 720}
    assert select_video_stream([small, large]) is large


@pytest.mark.parametrize(
    ("stream", "expected"),
    [
        ({"r_frame_rate": "25/1"}, 25.0),
        ({"r_frame_rate": "0/0", "avg_frame_rate": "24000/1001"}, 23.976),
        ({"r_frame_rate": "N/A"}, None),
        ({}, None),
    ],
)
def test_parse_frame_rate(stream, expected):
    assert parse_frame_rate(stream) == (pytest.approx(expected) if expected else None)


@pytest.mark.parametrize(
    ("stream", "expected"),
    [
        ({"bits_per_raw_sample": "10", "pix_fmt": "yuv420p"}, 10),
        ({"pix_fmt": "yuv420p10le"}, 10),
        ({"pix_fmt": "yuv422p12le"}, 12),
        ({"pix_fmt": "yuv420p"}, 8),
        ({"pix_fmt": "rgb24"}, None),
        ({}, None),
    ],
)
def test_parse_bit_depth(stream, expected):
    assert parse_bit_depth(stream) == expected


def test_pq_transfer_is_hdr10():
    info = classify_hdr(_hevc_stream(color_transfer="smpte2084", color_primaries="bt2020"))
    assert info.is_hdr is True
    assert info.format == HDR_HDR10


def test_hlg_transfer_outranks_bt2020_primaries():
    info = classify_hdr(_hevc_stream(color_transfer="arib-std-b67", color_primaries="bt2020"))
    assert info.format == HDR_HLG


def test_bt2020_primaries_alone_is_hdr10():
    assert classify_hdr(_hevc_stream(color_primaries="bt2020")).format == HDR_HDR10


def test_dolby_vision_side_data_wins_over_transfer():
    stream = _hevc_stream(
        color_transfer="smpte2084",
        side_data_list=[{"side_data_type": "DOVI configuration record", "dv_profile": 8}],
    )
    assert classify_hdr(stream).format == HDR_DOLBY_VISION


def test_hdr10_plus_dynamic_metadata():
    stream = _hevc_stream(
        color_transfer="smpte2084",
        side_data_list=[{"side_data_type": "HDR Dynamic Metadata SMPTE2094-40 (HDR10+)"}],
    )
    assert classify_hdr(stream).format == HDR_HDR10_PLUS


def test_container_tag_marks_generic_hdr():
    assert classify_hdr(_hevc_stream(), {"HDR": "1"}).format == HDR_GENERIC


def test_sdr_stream_and_missing_stream():
    assert classify_hdr(_hevc_stream()).is_hdr is False
    assert classify_hdr(None).is_hdr is False
