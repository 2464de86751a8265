from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from mediavault.db.models import ImageTag

__all__ = ["decode_fujifilm_maker_note", "decode_maker_note"]

FILM_MODES = {
    0x000: "F0/Standard (Provia)",
    0x100: "F1/Studio Portrait",
    0x110: "F1a/Studio Portrait Enhanced Saturation",
    0x120: "F1b/Studio Portrait Smooth Skin Tone (Astia)",
    0x130: "F1c/Studio Portrait Increased Sharpness",
    0x200: "F2/Fujichrome (Velvia)",
    0x300: "F3/Studio Portrait Ex",
    0x400: "F4/Velvia",
    0x500: "Pro Neg. Std",
    0x501: "Pro Neg. Hi",
    0x600: "Classic Chrome",
    0x700: "Eterna",
    0x800: "Classic Negative",
    0x900: "Bleach Bypass",
    0xA00: "Nostalgic Neg",
    0xB00: "Reala ACE",
}

DYNAMIC_RANGES = {1: "Standard", 3: "Wide"}

DYNAMIC_RANGE_SETTINGS = {
    0x0000: "Auto",
    0x0001: "Manual",
    0x0100: "Standard (100%)",
    0x0200: "Wide1 (230%)",
    0x0201: "Wide2 (400%)",
    0x8000: "Film Simulation",
}

EFFECT_STRENGTHS = {0: "Off", 32: "Weak", 64: "Strong"}

SHUTTER_TYPES = {
    0: "Mechanical",
    1: "Electronic",
    2: "Electronic (long shutter speed)",
    3: "Electronic Front Curtain",
}

AUTO_BRACKETING = {0: "Off", 1: "On", 2: "No flash & flash", 6: "Pixel Shift"}

ON_OFF = {0: "Off", 1: "On"}

BLUR_WARNINGS = {0: "None", 1: "Blur Warning"}

FOCUS_WARNINGS = {0: "Good", 1: "Out of focus"}

EXPOSURE_WARNINGS = {0: "Good", 1: "Bad exposure"}


def _text(value: Any) -> Optional[str]:
    if isinstance(value, bytes):
        value = value.split(b"\x00", 1)[0].decode("ascii", errors="replace")
    if value is None:
        return None
    text = str(value).rstrip("\x00").strip()
    return text or None


def _scalar(value: Any) -> Optional[int]:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if isinstance(value, int):
        return value
    return None


def _labelled(table: Mapping[int, str]) -> Callable[[Any], Optional[str]]:
    def convert(value: Any) -> Optional[str]:
        code = _scalar(value)
        if code is None:
            return None
        return table.get(code, str(code))

    return convert


def _tone(value: Any) -> Optional[int]:
    # Stored in steps of -16: -32 is +2 (hard), 16 is -1 (medium soft).
    code = _scalar(value)
    if code is None:
        return None
    return -code // 16


def _image_count(value: Any) -> Optional[int]:
    code = _scalar(value)
    if code is None:
        return None
    return code & 0x7FFF


_FUJIFILM_TAGS: Dict[int, Tuple[ImageTag, Callable[[Any], Any]]] = {
    0x0010: (ImageTag.internal_serial_number, _text),
    0x1000: (ImageTag.quality, _text),
    0x1040: (ImageTag.shadow_tone, _tone),
    0x1041: (ImageTag.highlight_tone, _tone),
    0x1045: (ImageTag.lens_modulation_optimizer, _labelled(ON_OFF)),
    0x1047: (ImageTag.grain_effect, _labelled(EFFECT_STRENGTHS)),
    0x1048: (ImageTag.color_chrome_effect, _labelled(EFFECT_STRENGTHS)),
    0x104E: (ImageTag.color_chrome_fx_blue, _labelled(EFFECT_STRENGTHS)),
    0x1050: (ImageTag.shutter_type, _labelled(SHUTTER_TYPES)),
    0x1100: (ImageTag.auto_bracketing, _labelled(AUTO_BRACKETING)),
    0x1101: (ImageTag.sequence_number, _scalar),
    0x1300: (ImageTag.blur_warning, _labelled(BLUR_WARNINGS)),
    0x1301: (ImageTag.focus_warning, _labelled(FOCUS_WARNINGS)),
    0x1302: (ImageTag.exposure_warning, _labelled(EXPOSURE_WARNINGS)),
    0x1400: (ImageTag.dynamic_range, _labelled(DYNAMIC_RANGES)),
    0x1401: (ImageTag.film_mode, _labelled(FILM_MODES)),
    0x1402: (ImageTag.dynamic_range_setting, _labelled(DYNAMIC_RANGE_SETTINGS)),
    0x1438: (ImageTag.image_count, _image_count),
    0x4100: (ImageTag.faces_detected, _scalar),
}


def decode_maker_note(make: Optional[str], values: Mapping[int, Any]) -> Dict[ImageTag, Any]:
    """Label the vendor fields we understand from a decoded MakerNote IFD.

    ``values`` is what Pillow's ``Exif.get_ifd(IFD.Makernote)`` returns. Only
    Fujifilm notes are labelled; anything else yields an empty mapping.
    """
    if not values or not (make or "").upper().startswith("FUJIFILM"):
        return {}
    return decode_fujifilm_maker_note(values)


def decode_fujifilm_maker_note(values: Mapping[int, Any]) -> Dict[ImageTag, Any]:
    decoded: Dict[ImageTag, Any] = {}
    for tag, raw in values.items():
        mapping = _FUJIFILM_TAGS.get(int(tag))
        if mapping is None or raw is None:
            continue
        image_tag, convert = mapping
        converted = convert(raw)
        if converted is not None:
            decoded[image_tag] = converted
    return decoded
