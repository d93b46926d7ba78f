from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

HEX_COLOR_PATTERN = re.compile(r"^#[0-9A-F]{6}$")
RGB_PATTERN = re.compile(
    r"^rgba?\(\s*(\d+(?:\.\d+)?)\s*,\s*(\d+(?:\.\d+)?)\s*,\s*(\d+(?:\.\d+)?)"
    r"(?:\s*,\s*[\d.]+%?)?\s*\)$",
    re.IGNORECASE,
)
SPACING_PATTERN = re.compile(r"^(\d+(?:\.\d+)?|\.\d+)(px|rem|em)?$")
ROOT_FONT_SIZE_PX = 16.0


@dataclass(frozen=True, slots=True)
class FontToken:
    family: str
    size: str = ""
    weight: str = ""
    line_height: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "family": self.family,
            "size": self.size,
            "weight": self.weight,
            "line_height": self.line_height,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FontToken:
        return cls(
            family=str(data.get("family", "")),
            size=str(data.get("size", "")),
            weight=str(data.get("weight", "")),
            line_height=str(data.get("line_height", data.get("lineHeight", ""))),
        )


@dataclass(frozen=True, slots=True)
class DesignTokenSet:
    colors: Mapping[str, str] = field(default_factory=dict)
    spacing: Mapping[str, str] = field(default_factory=dict)
    border_radius: Mapping[str, str] = field(default_factory=dict)
    fonts: Mapping[str, FontToken] = field(default_factory=dict)
    shadows: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # frozen: take private copies so later mutation of the inputs is not visible
        object.__setattr__(self, "colors", dict(self.colors))
        object.__setattr__(self, "spacing", dict(self.spacing))
        object.__setattr__(self, "border_radius", dict(self.border_radius))
        object.__setattr__(self, "fonts", dict(self.fonts))
        object.__setattr__(self, "shadows", dict(self.shadows))

    def category(self, name: str) -> Mapping[str, str]:
        return getattr(self, name)

    def is_empty(self) -> bool:
        return not (self.colors or self.spacing or self.border_radius or self.fonts or self.shadows)

    def to_dict(self) -> dict[str, Any]:
        return {
            "colors": dict(self.colors),
            "spacing": dict(self.spacing),
            "border_radius": dict(self.border_radius),
            "fonts": {name: font.to_dict() for name, font in self.fonts.items()},
            "shadows": dict(self.shadows),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> DesignTokenSet:
        if not data:
            return cls()
        fonts: dict[str, FontToken] = {}
        for name, raw in (data.get("fonts") or {}).items():
            if isinstance(raw, Mapping):
                fonts[str(name)] = FontToken.from_dict(raw)
        return cls(
            colors=_str_map(data.get("colors")),
            spacing=_str_map(data.get("spacing")),
            border_radius=_str_map(data.get("border_radius", data.get("borderRadius"))),
            fonts=fonts,
            shadows=_str_map(data.get("shadows")),
        )


def _str_map(value: Any) -> dict[str, str]:
    if not isinstance(value, Mapping):
        return {}
    return {str(key): str(item) for key, item in value.items()}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def normalize_color(value: str) -> str:
    """Normalize ``value`` to ``#RRGGBB``; unrecognized formats are only uppercased."""
    trimmed = value.strip()
    if trimmed.startswith("#") and len(trimmed) == 4:
        r, g, b = trimmed[1], trimmed[2], trimmed[3]
        return f"#{r}{r}{g}{g}{b}{b}".upper()
    match = RGB_PATTERN.match(trimmed)
    if match:
        channels = [min(255, max(0, round_half_up(float(part)))) for part in match.groups()]
        return "#" + "".join(f"{channel:02X}" for channel in channels)
    return trimmed.upper()


def hex_to_rgb(value: str) -> tuple[int, int, int] | None:
    normalized = normalize_color(value)
    if not HEX_COLOR_PATTERN.match(normalized):
        return None
    return (
        int(normalized[1:3], 16),
        int(normalized[3:5], 16),
        int(normalized[5:7], 16),
    )


def color_distance_percent(first: str, second: str) -> float:
    """Euclidean RGB distance as a percentage of the black-to-white distance."""
    rgb_first = hex_to_rgb(first)
    rgb_second = hex_to_rgb(second)
    if rgb_first is None or rgb_second is None:
        return 100.0
    distance = math.sqrt(sum((a - b) ** 2 for a, b in zip(rgb_first, rgb_second)))
    return distance / math.sqrt(3 * 255**2) * 100


def parse_spacing(value: str) -> float | None:
    match = SPACING_PATTERN.match(value.strip().lower())
    if not match:
        return None
    number = float(match.group(1))
    if match.group(2) in ("rem", "em"):
        return number * ROOT_FONT_SIZE_PX
    return number


NAMED_COLORS = frozenset(
    {
        "black",
        "white",
        "red",
        "green",
        "blue",
        "yellow",
        "orange",
        "purple",
        "pink",
        "gray",
        "grey",
        "transparent",
        "currentcolor",
    }
)


def is_color_value(value: str) -> bool:
    lowered = value.strip().lower()
    return (
        lowered.startswith("#")
        or lowered.startswith("rgb")
        or lowered.startswith("hsl")
        or lowered in NAMED_COLORS
    )


def _font(family: str, size: str, weight: str, line_height: str) -> dict[str, str]:
    return {"family": family, "size": size, "weight": weight, "line_height": line_height}


DEFAULT_TOKENS: dict[str, dict[str, Any]] = {
    "web": {
        "colors": {
            "primary": "#3B82F6",
            "secondary": "#6366F1",
            "background": "#FFFFFF",
            "surface": "#F9FAFB",
            "text": "#111827",
            "text-secondary": "#6B7280",
            "error": "#EF4444",
            "success": "#10B981",
        },
        "spacing": {"xs": "4px", "sm": "8px", "md": "16px", "lg": "24px", "xl": "32px"},
        "border_radius": {"sm": "4px", "md": "8px", "lg": "12px", "full": "9999px"},
        "fonts": {
            "body": _font("Inter, sans-serif", "16px", "400", "1.5"),
            "heading": _font("Inter, sans-serif", "24px", "700", "1.25"),
        },
    },
    "ios": {
        "colors": {
            "primary": "#007AFF",
            "secondary": "#5856D6",
            "background": "#FFFFFF",
            "surface": "#F2F2F7",
            "text": "#000000",
            "text-secondary": "#8E8E93",
            "error": "#FF3B30",
            "success": "#34C759",
        },
        "spacing": {"xs": "4", "sm": "8", "md": "16", "lg": "24", "xl": "32"},
        "border_radius": {"sm": "6", "md": "10", "lg": "14"},
        "fonts": {
            "body": _font("SF Pro Text", "17", "400", "22"),
            "title": _font("SF Pro Display", "28", "700", "34"),
        },
    },
    "android": {
        "colors": {
            "primary": "#6750A4",
            "secondary": "#625B71",
            "background": "#FFFBFE",
            "surface": "#FFFBFE",
            "text": "#1C1B1F",
            "text-secondary": "#49454F",
            "error": "#B3261E",
            "success": "#386A20",
        },
        "spacing": {"xs": "4", "sm": "8", "md": "16", "lg": "24", "xl": "32"},
        "border_radius": {"sm": "4", "md": "12", "lg": "16", "full": "28"},
        "fonts": {
            "body": _font("Roboto", "16", "400", "24"),
            "title": _font("Roboto", "22", "500", "28"),
        },
    },
}


def default_tokens(platform: str) -> DesignTokenSet:
    """Starting token set the designer is offered when no design source exists."""
    return DesignTokenSet.from_dict(DEFAULT_TOKENS.get(platform, DEFAULT_TOKENS["web"]))
