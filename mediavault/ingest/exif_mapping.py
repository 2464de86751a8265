"""Decoding of EXIF blocks into image metadata columns.

Pillow hands back EXIF as three integer-keyed dictionaries (the primary IFD, the
Exif sub-IFD and the GPS sub-IFD) whose values are strings, integers,
``IFDRational`` numbers, tuples of those, or raw ``bytes`` for ``UNDEFINED``
tags. This module turns that into the typed columns of ``image_metadata``, the
closed ``ImageTag`` map, and a JSON-safe bag of everything else it decoded.
"""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from PIL import Image
from PIL.ExifTags import GPS, GPSTAGS, IFD, TAGS, Base

from mediavault.core.logging import get_logger
from mediavault.db.models import ImageTag

from .makernotes import decode_maker_note

__all__ = [
    "ExifBlock",
    "ImageMetadataFields",
    "clean_string",
    "dms_to_decimal",
    "extract_image_metadata",
    "format_exposure_time",
    "format_version",
    "label",
    "read_exif_block",
]

logger = get_logger(component="exif_mapping")

METERING_MODES = {
    0: "Unknown",
    1: "Average",
    2: "Center-weighted average",
    3: "Spot",
    4: "Multi-spot",
    5: "Multi-segment",
    6: "Partial",
    255: "Other",
}

EXPOSURE_PROGRAMS = {
    0: "Not defined",
    1: "Manual",
    2: "Program AE",
    3: "Aperture-priority AE",
    4: "Shutter speed priority AE",
    5: "Creative (Slow speed)",
    6: "Action (High speed)",
    7: "Portrait",
    8: "Landscape",
    9: "Bulb",
}

WHITE_BALANCE = {0: "Auto", 1: "Manual"}

EXPOSURE_MODES = {0: "Auto", 1: "Manual", 2: "Auto bracket"}

SCENE_CAPTURE_TYPES = {0: "Standard", 1: "Landscape", 2: "Portrait", 3: "Night", 4: "Other"}

CONTRAST = {0: "Normal", 1: "Low", 2: "High"}

SATURATION = {0: "Normal", 1: "Low", 2: "High"}

SHARPNESS = {0: "Normal", 1: "Soft", 2: "Hard"}

SENSING_METHODS = {
    1: "Not defined",
    2: "One-chip color area",
    3: "Two-chip color area",
    4: "Three-chip color area",
    5: "Color sequential area",
    7: "Trilinear",
    8: "Color sequential linear",
}

CUSTOM_RENDERED = {0: "Normal", 1: "Custom"}

SUBJECT_DISTANCE_RANGES = {0: "Unknown", 1: "Macro", 2: "Close", 3: "Distant"}

RESOLUTION_UNITS = {1: "None", 2: "inches", 3: "cm"}

ORIENTATIONS = {
    1: "Horizontal (normal)",
    2: "Mirror horizontal",
    3: "Rotate 180",
    4: "Mirror vertical",
    5: "Mirror horizontal and rotate 270 CW",
    6: "Rotate 90 CW",
    7: "Mirror horizontal and rotate 90 CW",
    8: "Rotate 270 CW",
}

FILE_SOURCES = {1: "Film Scanner", 2: "Reflection Print Scanner", 3: "Digital Camera"}

SCENE_TYPES = {1: "Directly photographed"}

COLOR_SPACES = {
    1: "sRGB",
    2: "Adobe RGB",
    65533: "Wide Gamut RGB",
    65534: "ICC Profile",
    65535: "Uncalibrated",
}

LIGHT_SOURCES = {
    0: "Unknown",
    1: "Daylight",
    2: "Fluorescent",
    3: "Tungsten (Incandescent)",
    4: "Flash",
    9: "Fine Weather",
    10: "Cloudy",
    11: "Shade",
    12: "Daylight Fluorescent",
    13: "Day White Fluorescent",
    14: "Cool White Fluorescent",
    15: "White Fluorescent",
    16: "Warm White Fluorescent",
    17: "Standard Light A",
    18: "Standard Light B",
    19: "Standard Light C",
    20: "D55",
    21: "D65",
    22: "D75",
    23: "D50",
    24: "ISO Studio Tungsten",
    255: "Other",
}

FLASH_MODES = {
    0x00: "No Flash",
    0x01: "Fired",
    0x05: "Fired, Return not detected",
    0x07: "Fired, Return detected",
    0x08: "On, Did not fire",
    0x09: "On, Fired",
    0x0D: "On, Return not detected",
    0x0F: "On, Return detected",
    0x10: "Off, Did not fire",
    0x14: "Off, Did not fire, Return not detected",
    0x18: "Auto, Did not fire",
    0x19: "Auto, Fired",
    0x1D: "Auto, Fired, Return not detected",
    0x1F: "Auto, Fired, Return detected",
    0x20: "No flash function",
    0x30: "Off, No flash function",
    0x41: "Fired, Red-eye reduction",
    0x45: "Fired, Red-eye reduction, Return not detected",
    0x47: "Fired, Red-eye reduction, Return detected",
    0x49: "On, Red-eye reduction",
    0x4D: "On, Red-eye reduction, Return not detected",
    0x4F: "On, Red-eye reduction, Return detected",
    0x50: "Off, Red-eye reduction",
    0x58: "Auto, Did not fire, Red-eye reduction",
    0x59: "Auto, Fired, Red-eye reduction",
    0x5D: "Auto, Fired, Red-eye reduction, Return not detected",
    0x5F: "Auto, Fired, Red-eye reduction, Return detected",
}

_COMPONENTS = {0: "-", 1: "Y", 2: "Cb", 3: "Cr", 4: "R", 5: "G", 6: "B"}

_USER_COMMENT_CODES = {
    b"ASCII\x00\x00\x00": "ascii",
    b"UNICODE\x00": "utf-16",
    b"JIS\x00\x00\x00\x00\x00": "shift_jis",
    b"\x00" * 8: "utf-8",
}

# Pointers and blobs that never make it into the raw bag.
_SKIPPED_RAW = {
    int(IFD.Exif),
    int(IFD.GPSInfo),
    int(IFD.Interop),
    int(IFD.Makernote),
    0x0201,  # JPEG thumbnail offset
    0x0202,  # JPEG thumbnail length
    0x02BC,  # XMP packet
    0x8773,  # ICC profile
    0xC4A5,  # PrintIM
}

_MAX_RAW_BYTES = 64


@dataclass(slots=True)
class ExifBlock:
    """The IFDs of one EXIF segment, keyed by numeric tag id."""

    primary: Dict[int, Any] = field(default_factory=dict)
    exif: Dict[int, Any] = field(default_factory=dict)
    gps: Dict[int, Any] = field(default_factory=dict)
    interop: Dict[int, Any] = field(default_factory=dict)
    maker_note: Dict[int, Any] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (self.primary or self.exif or self.gps or self.interop)


@dataclass(slots=True)
class ImageMetadataFields:
    make: Optional[str] = None
    model: Optional[str] = None
    software: Optional[str] = None
    captured_at: Optional[str] = None
    exposure_time: Optional[str] = None
    f_number: Optional[float] = None
    iso: Optional[int] = None
    focal_length: Optional[float] = None
    lens_make: Optional[str] = None
    lens_model: Optional[str] = None
    orientation: Optional[int] = None
    gps_latitude: Optional[float] = None
    gps_longitude: Optional[float] = None
    color_space: Optional[str] = None
    tags: Dict[str, Any] = field(default_factory=dict)
    raw_exif: Dict[str, Any] = field(default_factory=dict)

    def has_data(self) -> bool:
        return any(
            value not in (None, "", {})
            for value in (
                self.make,
                self.model,
                self.software,
                self.captured_at,
                self.exposure_time,
                self.f_number,
                self.iso,
                self.focal_length,
                self.lens_make,
                self.lens_model,
                self.orientation,
                self.gps_latitude,
                self.gps_longitude,
                self.color_space,
                self.tags,
                self.raw_exif,
            )
        )


def read_exif_block(exif: Image.Exif) -> Optional[ExifBlock]:
    """Split a Pillow ``Exif`` object into its IFDs, or ``None`` when it is empty."""
    primary = {int(tag): value for tag, value in exif.items()}
    block = ExifBlock(
        primary=primary,
        exif=_sub_ifd(exif, IFD.Exif) if int(IFD.Exif) in primary else {},
        gps=_sub_ifd(exif, IFD.GPSInfo) if int(IFD.GPSInfo) in primary else {},
    )
    if int(IFD.Interop) in block.exif:
        block.interop = _sub_ifd(exif, IFD.Interop)
    if int(IFD.Makernote) in block.exif:
        try:
            block.maker_note = _sub_ifd(exif, IFD.Makernote)
        except (struct.error, ValueError) as exc:
            logger.debug("maker_note_unreadable", error=str(exc))
    if block.is_empty():
        return None
    return block


def _sub_ifd(exif: Image.Exif, ifd: IFD) -> Dict[int, Any]:
    values = exif.get_ifd(ifd)
    if not isinstance(values, Mapping):
        return {}
    return {int(tag): value for tag, value in values.items()}


def extract_image_metadata(block: Optional[ExifBlock]) -> Optional[ImageMetadataFields]:
    """Decode an EXIF block into metadata fields.

    Returns ``None`` when there is no block or nothing in it could be decoded.
    """
    if block is None or block.is_empty():
        return None

    fields = ImageMetadataFields()
    consumed: set[Tuple[str, int]] = set()

    def take(tag: int, source: str = "any") -> Any:
        tag = int(tag)
        if source in ("any", "exif") and block.exif.get(tag) is not None:
            consumed.add(("exif", tag))
            return block.exif[tag]
        if source in ("any", "primary") and block.primary.get(tag) is not None:
            consumed.add(("primary", tag))
            return block.primary[tag]
        if source == "gps" and block.gps.get(tag) is not None:
            consumed.add(("gps", tag))
            return block.gps[tag]
        if source == "interop" and block.interop.get(tag) is not None:
            consumed.add(("interop", tag))
            return block.interop[tag]
        return None

    fields.make = clean_string(take(Base.Make))
    fields.model = clean_string(take(Base.Model))
    fields.software = clean_string(take(Base.Software, "primary"))
    date_time_original = clean_string(take(Base.DateTimeOriginal, "exif"))
    date_time = clean_string(take(Base.DateTime, "primary"))
    fields.captured_at = date_time_original or date_time
    fields.exposure_time = format_exposure_time(take(Base.ExposureTime, "exif"))
    fields.f_number = _number(take(Base.FNumber, "exif"))
    fields.iso = _first_int(take(Base.ISOSpeedRatings, "exif"))
    fields.focal_length = _number(take(Base.FocalLength, "exif"))
    fields.lens_make = clean_string(take(Base.LensMake, "exif"))
    fields.lens_model = clean_string(take(Base.LensModel, "exif"))
    orientation = _int(take(Base.Orientation, "primary"))
    fields.orientation = orientation
    color_space = take(Base.ColorSpace, "exif")
    fields.color_space = label(COLOR_SPACES, color_space)

    latitude = take(GPS.GPSLatitude, "gps")
    latitude_ref = take(GPS.GPSLatitudeRef, "gps")
    if latitude is not None and latitude_ref is not None:
        fields.gps_latitude = dms_to_decimal(latitude, latitude_ref)
    longitude = take(GPS.GPSLongitude, "gps")
    longitude_ref = take(GPS.GPSLongitudeRef, "gps")
    if longitude is not None and longitude_ref is not None:
        fields.gps_longitude = dms_to_decimal(longitude, longitude_ref)

    tags: Dict[str, Any] = {}
    for image_tag, source, tag_id, convert in _TAG_MAPPING:
        value = convert(take(tag_id, source))
        if value is not None:
            tags[image_tag.value] = value

    if orientation is not None:
        tags[ImageTag.orientation_text.value] = label(ORIENTATIONS, orientation)
    if date_time_original:
        tags[ImageTag.date_time_original.value] = date_time_original

    altitude = _number(take(GPS.GPSAltitude, "gps"))
    if altitude is not None:
        below_sea_level = _int(take(GPS.GPSAltitudeRef, "gps")) == 1
        tags[ImageTag.gps_altitude.value] = -altitude if below_sea_level else altitude

    for image_tag, value in decode_maker_note(fields.make, block.maker_note).items():
        tags.setdefault(image_tag.value, value)

    fields.tags = tags
    fields.raw_exif = _raw_bag(block, consumed)

    if not fields.has_data():
        return None
    return fields


def clean_string(value: Any) -> Optional[str]:
    """Strip trailing NULs and whitespace; empty results become ``None``."""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        value = bytes(value).decode("utf-8", errors="replace")
    text = str(value).rstrip("\x00 \t\r\n").strip()
    # Some writers pad with NULs in the middle of fixed-width fields.
    text = text.split("\x00", 1)[0].strip()
    return text or None


def format_exposure_time(value: Any) -> Optional[str]:
    """Render an exposure time the way cameras display it.

    Sub-second exposures become ``1/N`` (0.008 is ``1/125``); longer ones are
    the plain number of seconds.
    """
    seconds = _number(value)
    if seconds is None or seconds <= 0:
        return None
    if seconds < 1:
        return f"1/{round(1 / seconds)}"
    return f"{seconds:g}"


def dms_to_decimal(dms: Any, ref: Any) -> Optional[float]:
    """Convert degrees/minutes/seconds into signed decimal degrees.

    Southern latitudes and western longitudes are negative.
    """
    parts = [_number(part) for part in _as_sequence(dms)]
    if not parts or any(part is None for part in parts):
        return None
    degrees, minutes, seconds = (parts + [0.0, 0.0])[:3]
    decimal = degrees + minutes / 60 + seconds / 3600
    hemisphere = (clean_string(ref) or "").upper()
    if hemisphere in ("S", "W"):
        decimal = -decimal
    return round(decimal, 7)


def label(table: Mapping[int, str], code: Any) -> Optional[str]:
    """Look a numeric EXIF code up in ``table``; unknown codes pass through as text."""
    number = _int(code)
    if number is None:
        return None
    return table.get(number, str(number))


def format_version(value: Any) -> Optional[str]:
    """Render version-style ``UNDEFINED`` tags as uppercase hex, two digits per byte."""
    if value is None:
        return None
    if isinstance(value, str):
        raw = value.encode("latin-1", errors="replace")
    elif isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        try:
            raw = bytes(int(part) & 0xFF for part in _as_sequence(value))
        except (TypeError, ValueError):
            return None
    if not raw:
        return None
    return "".join(f"{byte:02X}" for byte in raw)


def format_lens_specification(value: Any) -> Optional[str]:
    parts = [_number(part) for part in _as_sequence(value)]
    if len(parts) != 4 or parts[0] is None:
        return None
    min_focal, max_focal, min_aperture, max_aperture = parts
    focal = f"{min_focal:g}mm" if not max_focal or max_focal == min_focal else f"{min_focal:g}-{max_focal:g}mm"
    if min_aperture is None:
        return focal
    if max_aperture is None or max_aperture == min_aperture:
        return f"{focal} f/{min_aperture:g}"
    return f"{focal} f/{min_aperture:g}-{max_aperture:g}"


def format_components(value: Any) -> Optional[str]:
    if not isinstance(value, (bytes, bytearray, tuple, list)):
        return None
    names = [_COMPONENTS.get(int(part), str(int(part))) for part in bytes(value) if part is not None]
    return ", ".join(names) or None


def decode_user_comment(value: Any) -> Optional[str]:
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
        encoding = _USER_COMMENT_CODES.get(raw[:8])
        if encoding is not None:
            return clean_string(raw[8:].decode(encoding, errors="replace"))
        return clean_string(raw)
    return clean_string(value)


def _labelled(table: Mapping[int, str]) -> Callable[[Any], Optional[str]]:
    return lambda value: label(table, value)


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, (str, bytes, bytearray)):
        return None
    if isinstance(value, (tuple, list)):
        if len(value) != 1:
            return None
        value = value[0]
    try:
        number = float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _int(value: Any) -> Optional[int]:
    if isinstance(value, (bytes, bytearray)):
        return value[0] if len(value) == 1 else None
    number = _number(value)
    if number is None:
        return None
    return int(number)


def _first_int(value: Any) -> Optional[int]:
    if isinstance(value, (tuple, list)):
        value = value[0] if value else None
    return _int(value)


def _as_sequence(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (tuple, list)):
        return list(value)
    if isinstance(value, (bytes, bytearray)):
        return list(bytes(value))
    return [value]


_TAG_MAPPING: Tuple[Tuple[ImageTag, str, int, Callable[[Any], Any]], ...] = (
    (ImageTag.artist, "primary", Base.Artist, clean_string),
    (ImageTag.copyright, "primary", Base.Copyright, clean_string),
    (ImageTag.image_width, "exif", Base.ExifImageWidth, _int),
    (ImageTag.image_height, "exif", Base.ExifImageHeight, _int),
    (ImageTag.x_resolution, "primary", Base.XResolution, _number),
    (ImageTag.y_resolution, "primary", Base.YResolution, _number),
    (ImageTag.resolution_unit, "primary", Base.ResolutionUnit, _labelled(RESOLUTION_UNITS)),
    (ImageTag.compressed_bits_per_pixel, "exif", Base.CompressedBitsPerPixel, _number),
    (ImageTag.rating, "any", Base.Rating, _int),
    (ImageTag.user_comment, "exif", Base.UserComment, decode_user_comment),
    (ImageTag.exposure_program, "exif", Base.ExposureProgram, _labelled(EXPOSURE_PROGRAMS)),
    (ImageTag.exposure_compensation, "exif", Base.ExposureBiasValue, _number),
    (ImageTag.exposure_mode, "exif", Base.ExposureMode, _labelled(EXPOSURE_MODES)),
    (ImageTag.metering_mode, "exif", Base.MeteringMode, _labelled(METERING_MODES)),
    (ImageTag.light_source, "exif", Base.LightSource, _labelled(LIGHT_SOURCES)),
    (ImageTag.flash, "exif", Base.Flash, _labelled(FLASH_MODES)),
    (ImageTag.subject_distance, "exif", Base.SubjectDistance, _number),
    (ImageTag.subject_distance_range, "exif", Base.SubjectDistanceRange, _labelled(SUBJECT_DISTANCE_RANGES)),
    (ImageTag.max_aperture_value, "exif", Base.MaxApertureValue, _number),
    (ImageTag.white_balance, "exif", Base.WhiteBalance, _labelled(WHITE_BALANCE)),
    (ImageTag.contrast, "exif", Base.Contrast, _labelled(CONTRAST)),
    (ImageTag.saturation, "exif", Base.Saturation, _labelled(SATURATION)),
    (ImageTag.sharpness, "exif", Base.Sharpness, _labelled(SHARPNESS)),
    (ImageTag.scene_capture_type, "exif", Base.SceneCaptureType, _labelled(SCENE_CAPTURE_TYPES)),
    (ImageTag.custom_rendered, "exif", Base.CustomRendered, _labelled(CUSTOM_RENDERED)),
    (ImageTag.sensing_method, "exif", Base.SensingMethod, _labelled(SENSING_METHODS)),
    (ImageTag.file_source, "exif", Base.FileSource, _labelled(FILE_SOURCES)),
    (ImageTag.scene_type, "exif", Base.SceneType, _labelled(SCENE_TYPES)),
    (ImageTag.date_time_digitized, "exif", Base.DateTimeDigitized, clean_string),
    (ImageTag.offset_time, "exif", Base.OffsetTime, clean_string),
    (ImageTag.offset_time_original, "exif", Base.OffsetTimeOriginal, clean_string),
    (ImageTag.offset_time_digitized, "exif", Base.OffsetTimeDigitized, clean_string),
    (ImageTag.lens_info, "exif", Base.LensSpecification, format_lens_specification),
    (ImageTag.focal_length_in_35mm_film, "exif", Base.FocalLengthIn35mmFilm, _int),
    (ImageTag.exif_version, "exif", Base.ExifVersion, format_version),
    (ImageTag.flashpix_version, "exif", Base.FlashPixVersion, format_version),
    (ImageTag.components_configuration, "exif", Base.ComponentsConfiguration, format_components),
    (ImageTag.body_serial_number, "exif", Base.BodySerialNumber, clean_string),
    (ImageTag.interoperability_index, "interop", Base.InteropIndex, clean_string),
)


def _raw_bag(block: ExifBlock, consumed: Iterable[Tuple[str, int]]) -> Dict[str, Any]:
    seen = set(consumed)
    bag: Dict[str, Any] = {}
    for source, values, names in (
        ("primary", block.primary, TAGS),
        ("exif", block.exif, TAGS),
        ("gps", block.gps, GPSTAGS),
    ):
        for tag, value in values.items():
            if (source, tag) in seen or (source != "gps" and tag in _SKIPPED_RAW):
                continue
            if (source == "exif" and ("primary", tag) in seen) or (source == "primary" and ("exif", tag) in seen):
                continue
            converted = _json_safe(value)
            if converted is None:
                continue
            key = names.get(tag, f"0x{tag:04X}")
            if source == "gps" and not key.startswith("GPS"):
                key = f"GPS{key}"
            bag.setdefault(key, converted)
    return bag


def _json_safe(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        if len(value) > _MAX_RAW_BYTES:
            return None
        return format_version(value)
    if isinstance(value, str):
        return clean_string(value)
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, (tuple, list)):
        items = [_json_safe(item) for item in value]
        items = [item for item in items if item is not None]
        return items or None
    if isinstance(value, Mapping):
        return None
    return _number(value)
