import asyncio
import io
import json
import shutil
import struct
import subprocess
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from PIL.ExifTags import GPS, IFD, Base
from PIL.TiffImagePlugin import IFDRational

from mediavault.core.config import get_settings
from mediavault.core.db import Base as ModelBase, create_engine
from mediavault.ingest.tools import ToolError, ToolResult
from mediavault.main import create_app
import mediavault.db.models  # noqa: F401 - register tables on the metadata


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "no_default_env: disable the default MediaVault environment bootstrap fixture",
    )


@pytest.fixture(autouse=True)
def configure_environment(request, monkeypatch, tmp_path):
    if request.node.get_closest_marker("no_default_env"):
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()
        return
    db_path = tmp_path / "mediavault_test.db"

    monkeypatch.setenv("MEDIAVAULT_ENV", "test")
    monkeypatch.setenv("MEDIAVAULT_LOG_LEVEL", "debug")
    monkeypatch.setenv("MEDIAVAULT_DB_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("MEDIAVAULT_UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("MEDIAVAULT_TEMP_DIR", str(tmp_path / "tmp"))
    monkeypatch.setenv("MEDIAVAULT_THUMBNAIL_SIZE", "64")
    monkeypatch.setenv("MEDIAVAULT_WORKER_POOL_SIZE", "2")

    get_settings.cache_clear()
    settings = get_settings()
    engine = create_engine(settings)

    async def _setup() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(ModelBase.metadata.create_all)

    asyncio.run(_setup())

    yield settings

    async def _teardown() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(ModelBase.metadata.drop_all)
        await engine.dispose()

    asyncio.run(_teardown())
    get_settings.cache_clear()


@pytest.fixture()
def settings(configure_environment):
    return configure_environment


@pytest.fixture()
def client(configure_environment):
    app = create_app()
    with TestClient(app) as client:
        yield client


def build_jpeg(
    width: int = 32,
    height: int = 24,
    *,
    color=(200, 40, 40),
    exif: Image.Exif | None = None,
) -> bytes:
    buffer = io.BytesIO()
    image = Image.new("RGB", (width, height), color)
    if exif is not None:
        image.save(buffer, format="JPEG", quality=90, exif=exif)
    else:
        image.save(buffer, format="JPEG", quality=90)
    return buffer.getvalue()


def camera_exif(
    *,
    exposure=IFDRational(1, 125),
    latitude_ref: str = "N",
    longitude_ref: str = "E",
    maker_note: bytes | None = None,
) -> Image.Exif:
    """A plausible camera EXIF segment with primary, Exif and GPS IFDs."""
    exif = Image.Exif()
    exif[Base.Make] = "FUJIFILM"
    exif[Base.Model] = "X-T5"
    exif[Base.Software] = "Digital Camera X-T5 Ver2.00"
    exif[Base.Orientation] = 1
    exif[Base.DateTime] = "2024:05:01 10:00:00"
    exif_ifd = {
        Base.ExposureTime: exposure,
        Base.FNumber: IFDRational(28, 10),
        Base.ISOSpeedRatings: 200,
        Base.FocalLength: IFDRational(230, 10),
        Base.DateTimeOriginal: "2024:05:01 09:30:15",
        Base.LensModel: "XF23mmF1.4 R LM WR",
        Base.ColorSpace: 1,
        Base.MeteringMode: 5,
        Base.WhiteBalance: 0,
    }
    if maker_note is not None:
        exif_ifd[Base.MakerNote] = maker_note
    exif[IFD.Exif] = exif_ifd
    exif[IFD.GPSInfo] = {
        GPS.GPSLatitudeRef: latitude_ref,
        GPS.GPSLatitude: (IFDRational(33, 1), IFDRational(51, 1), IFDRational(54, 1)),
        GPS.GPSLongitudeRef: longitude_ref,
        GPS.GPSLongitude: (IFDRational(151, 1), IFDRational(12, 1), IFDRational(36, 1)),
    }
    return exif


def _ifd_entry(tag: int, field_type: int, count: int, value: bytes) -> bytes:
    return struct.pack("<HHI", tag, field_type, count) + value.ljust(4, b"\x00")


def fujifilm_maker_note() -> bytes:
    """A Fujifilm MakerNote: Classic Chrome, hard shadows, weak grain, NORMAL quality."""
    entries = [
        _ifd_entry(0x1401, 3, 1, struct.pack("<H", 0x600)),
        _ifd_entry(0x1040, 9, 1, struct.pack("<i", -32)),
        _ifd_entry(0x1041, 9, 1, struct.pack("<i", 16)),
        _ifd_entry(0x1047, 4, 1, struct.pack("<I", 32)),
        _ifd_entry(0x1438, 3, 1, struct.pack("<H", 0x8005)),
        None,
        _ifd_entry(0x9999, 3, 1, struct.pack("<H", 7)),
    ]
    header = b"FUJIFILM" + struct.pack("<I", 12)
    ifd_size = 2 + 12 * len(entries) + 4
    quality = b"NORMAL \x00"
    entries[5] = _ifd_entry(0x1000, 2, len(quality), struct.pack("<I", len(header) + ifd_size))
    ifd = struct.pack("<H", len(entries)) + b"".join(entries) + struct.pack("<I", 0)
    return header + ifd + quality


def build_png(width: int = 20, height: int = 20, *, alpha: bool = True) -> bytes:
    buffer = io.BytesIO()
    mode = "RGBA" if alpha else "RGB"
    fill = (0, 128, 255, 0) if alpha else (0, 128, 255)
    Image.new(mode, (width, height), fill).save(buffer, format="PNG")
    return buffer.getvalue()


def corrupt_jpeg() -> bytes:
    """JPEG signature followed by bytes no decoder can make sense of."""
    return b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00" + b"\x13\x37" * 512


def fake_mp4() -> bytes:
    """An ISO BMFF ``ftyp`` box that libmagic reports as ``video/mp4``."""
    ftyp = b"\x00\x00\x00\x20ftypisom\x00\x00\x02\x00isomiso2avc1mp41"
    mdat = b"\x00\x00\x00\x10mdat" + b"\x00" * 8
    return ftyp + mdat


HDR10_PROBE = {
    "streams": [
        {
            "codec_type": "video",
            "codec_name": "hevc",
            "width": 3840,
            "height": 2160,
            "pix_fmt": "yuv420p10le",
            "r_frame_rate": "24/1",
            "color_transfer": "smpte2084",
            "color_primaries": "bt2020",
        }
    ],
    "format": {"duration": "0.5", "bit_rate": "20000000"},
}


class FakeRunner:
    """Stands in for ffprobe and ffmpeg; ffmpeg calls write a small JPEG."""

    def __init__(self, probe: dict | None = None, *, fail_seeks: bool = False, frame_size=(64, 36)):
        self.probe = probe if probe is not None else HDR10_PROBE
        self.fail_seeks = fail_seeks
        self.frame_size = frame_size
        self.calls: list[list[str]] = []

    def __call__(self, command, *, timeout=None) -> ToolResult:
        argv = [str(part) for part in command]
        self.calls.append(argv)
        if argv[0] == "ffprobe":
            return ToolResult(command=argv, returncode=0, stdout=json.dumps(self.probe), stderr="")
        timestamp = float(argv[argv.index("-ss") + 1])
        if self.fail_seeks and timestamp > 0:
            raise ToolError("ffmpeg exited with status 1", tool="ffmpeg")
        Image.new("RGB", self.frame_size, (10, 20, 30)).save(argv[-1], format="JPEG")
        return ToolResult(command=argv, returncode=0, stdout="", stderr="")

    def seek_times(self) -> list[str]:
        return [call[call.index("-ss") + 1] for call in self.calls if call[0] == "ffmpeg"]


@pytest.fixture(scope="session")
def generated_video_file(tmp_path_factory) -> Path:
    """
    Generates a small, valid MP4 video file for testing in a temporary directory.
    """
    if shutil.which("ffmpeg") is None:
        pytest.skip("ffmpeg is not installed")
    video_path = tmp_path_factory.mktemp("data") / "test_video.mp4"

    # Generate a 2-second video with a solid color
    command = [
        "ffmpeg",
        "-f", "lavfi",
        "-i", "color=c=blue:s=128x72:r=30",
        "-t", "2",
        "-pix_fmt", "yuv420p",
        str(video_path)
    ]
    subprocess.run(command, check=True, capture_output=True)
    return video_path
