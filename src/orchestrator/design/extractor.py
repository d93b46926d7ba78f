from __future__ import annotations

import logging
import re
from pathlib import Path

from orchestrator.design.tokens import DesignTokenSet, is_color_value, normalize_color

logger = logging.getLogger(__name__)

STYLESHEET_PATHS = (
    "src/styles/variables.css",
    "src/styles/globals.css",
    "src/styles/tokens.css",
    "src/globals.css",
    "src/index.css",
    "styles/variables.css",
    "styles/globals.css",
    "app/globals.css",
    "css/variables.css",
)
TAILWIND_CONFIG_PATHS = (
    "tailwind.config.js",
    "tailwind.config.ts",
    "tailwind.config.mjs",
    "tailwind.config.cjs",
)

CSS_VARIABLE_PATTERN = re.compile(r"--([a-zA-Z0-9_-]+)\s*:\s*([^;]+);")
TAILWIND_COLORS_PATTERN = re.compile(r"colors\s*:\s*\{([^}]+(?:\{[^}]*\}[^}]*)*)\}", re.DOTALL)
TAILWIND_SPACING_PATTERN = re.compile(r"spacing\s*:\s*\{([^}]+)\}", re.DOTALL)
TAILWIND_RADIUS_PATTERN = re.compile(r"borderRadius\s*:\s*\{([^}]+)\}", re.DOTALL)
OBJECT_ENTRY_PATTERN = re.compile(r"['\"]?([a-zA-Z0-9_-]+)['\"]?\s*:\s*['\"]([^'\"]+)['\"]")

COLOR_NAME_HINTS = ("color", "bg", "background", "text", "border-color", "fill", "stroke")
SPACING_NAME_HINTS = ("spacing", "gap", "margin", "padding", "space")
RADIUS_NAME_HINTS = ("radius", "rounded")
TYPOGRAPHY_NAME_HINTS = ("font-size", "font-family", "font-weight", "line-height")


class _Buckets:
    def __init__(self) -> None:
        self.colors: dict[str, str] = {}
        self.spacing: dict[str, str] = {}
        self.border_radius: dict[str, str] = {}
        self.shadows: dict[str, str] = {}

    def freeze(self) -> DesignTokenSet:
        return DesignTokenSet(
            colors=self.colors,
            spacing=self.spacing,
            border_radius=self.border_radius,
            shadows=self.shadows,
        )


def extract_css_variables(css: str) -> dict[str, str]:
    return {
        match.group(1).strip(): match.group(2).strip()
        for match in CSS_VARIABLE_PATTERN.finditer(css)
    }


def _categorize(name: str, value: str, buckets: _Buckets) -> None:
    lowered = name.lower()
    if any(hint in lowered for hint in COLOR_NAME_HINTS) or is_color_value(value):
        buckets.colors[name] = normalize_color(value)
    elif any(hint in lowered for hint in SPACING_NAME_HINTS):
        buckets.spacing[name] = value
    elif any(hint in lowered for hint in RADIUS_NAME_HINTS):
        buckets.border_radius[name] = value
    elif "shadow" in lowered:
        buckets.shadows[name] = value
    elif any(hint in lowered for hint in TYPOGRAPHY_NAME_HINTS):
        # typography values are compared like lengths
        buckets.spacing[name] = value


def _read_text(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.debug("Skipping unreadable stylesheet %s: %s", path, exc)
        return None


def _object_entries(block: str) -> dict[str, str]:
    return {match.group(1): match.group(2) for match in OBJECT_ENTRY_PATTERN.finditer(block)}


def _merge_tailwind(root: Path, buckets: _Buckets) -> None:
    for relative in TAILWIND_CONFIG_PATHS:
        path = root / relative
        if not path.exists():
            continue
        content = _read_text(path)
        if content is None:
            return
        match = TAILWIND_COLORS_PATTERN.search(content)
        if match:
            buckets.colors.update(_object_entries(match.group(1)))
        match = TAILWIND_SPACING_PATTERN.search(content)
        if match:
            buckets.spacing.update(_object_entries(match.group(1)))
        match = TAILWIND_RADIUS_PATTERN.search(content)
        if match:
            buckets.border_radius.update(_object_entries(match.group(1)))
        return


def extract_tokens(root: Path, *, parse_tailwind: bool = True) -> DesignTokenSet:
    """Collect design tokens declared in the project's stylesheets."""
    buckets = _Buckets()
    for relative in STYLESHEET_PATHS:
        path = root / relative
        if not path.exists():
            continue
        content = _read_text(path)
        if content is None:
            continue
        for name, value in extract_css_variables(content).items():
            _categorize(name, value, buckets)
    if parse_tailwind:
        _merge_tailwind(root, buckets)
    return buckets.freeze()
