"""Compare the designer's expected tokens with the tokens found in the code.

The comparison is pure: categories are visited in a fixed order and token
names in sorted order, so the result does not depend on mapping order.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Literal

from orchestrator.design.tokens import (
    DesignTokenSet,
    color_distance_percent,
    normalize_color,
    parse_spacing,
    round_half_up,
)

Severity = Literal["error", "warning", "info"]
Category = Literal["colors", "spacing", "border_radius"]

CHECKED_CATEGORIES: tuple[Category, ...] = ("colors", "spacing", "border_radius")
NOT_FOUND = "NOT_FOUND"
COLOR_ERROR_PERCENT = 20.0
SPACING_ERROR_PX = 8.0


@dataclass(frozen=True, slots=True)
class ComparisonOptions:
    color_tolerance: float = 5.0
    spacing_tolerance: float = 2.0
    min_match_percentage: int = 90


@dataclass(frozen=True, slots=True)
class Discrepancy:
    category: str
    token_name: str
    expected_value: str
    actual_value: str
    difference: str
    severity: Severity

    def to_dict(self) -> dict[str, str]:
        return {
            "category": self.category,
            "token_name": self.token_name,
            "expected_value": self.expected_value,
            "actual_value": self.actual_value,
            "difference": self.difference,
            "severity": self.severity,
        }


@dataclass(slots=True)
class CategoryResult:
    total: int = 0
    matching: int = 0
    mismatched: int = 0
    missing: int = 0


@dataclass(slots=True)
class ComparisonResult:
    verified: bool
    match_percentage: int
    total_checked: int
    matching_count: int
    missing_count: int
    discrepancies: list[Discrepancy] = field(default_factory=list)
    categories: dict[str, CategoryResult] = field(default_factory=dict)


def _normalized_name(name: str) -> str:
    return name.lower().replace("-", "").replace("_", "")


def find_matching_token(name: str, extracted: Mapping[str, str]) -> str | None:
    """Return the extracted token name matching ``name``.

    Exact name first, then a case and separator insensitive match, then a
    suffix match on the last hyphen-delimited segment of ``name``.
    """
    if name in extracted:
        return name
    candidates = sorted(extracted)
    target = _normalized_name(name)
    for candidate in candidates:
        if _normalized_name(candidate) == target:
            return candidate
    suffix = name.split("-")[-1].lower()
    if suffix:
        for candidate in candidates:
            if candidate.lower().endswith(suffix):
                return candidate
    return None


def _compare_color(
    name: str, expected: str, actual: str, options: ComparisonOptions
) -> Discrepancy | None:
    if normalize_color(expected) == normalize_color(actual):
        return None
    percent = color_distance_percent(expected, actual)
    if percent <= options.color_tolerance:
        return None
    return Discrepancy(
        category="colors",
        token_name=name,
        expected_value=expected,
        actual_value=actual,
        difference=f"Color difference: {percent:.1f}%",
        severity="error" if percent > COLOR_ERROR_PERCENT else "warning",
    )


def _compare_length(
    category: str, name: str, expected: str, actual: str, options: ComparisonOptions
) -> Discrepancy | None:
    expected_px = parse_spacing(expected)
    actual_px = parse_spacing(actual)
    if expected_px is None or actual_px is None:
        if expected.strip() == actual.strip():
            return None
        return Discrepancy(
            category=category,
            token_name=name,
            expected_value=expected,
            actual_value=actual,
            difference="Values differ (unparseable)",
            severity="warning",
        )
    diff = abs(expected_px - actual_px)
    if diff <= options.spacing_tolerance:
        return None
    return Discrepancy(
        category=category,
        token_name=name,
        expected_value=expected,
        actual_value=actual,
        difference=f"Spacing difference: {diff:g}px",
        severity="error" if diff > SPACING_ERROR_PX else "warning",
    )


def compare_tokens(
    expected: DesignTokenSet,
    extracted: DesignTokenSet,
    options: ComparisonOptions | None = None,
) -> ComparisonResult:
    options = options or ComparisonOptions()
    discrepancies: list[Discrepancy] = []
    categories: dict[str, CategoryResult] = {}

    for category in CHECKED_CATEGORIES:
        expected_tokens = expected.category(category)
        extracted_tokens = extracted.category(category)
        summary = CategoryResult()
        for name in sorted(expected_tokens):
            expected_value = expected_tokens[name]
            summary.total += 1
            match_name = find_matching_token(name, extracted_tokens)
            if match_name is None:
                summary.missing += 1
                discrepancies.append(
                    Discrepancy(
                        category=category,
                        token_name=name,
                        expected_value=expected_value,
                        actual_value=NOT_FOUND,
                        difference="Token not found in implementation",
                        severity="warning",
                    )
                )
                continue
            actual_value = extracted_tokens[match_name]
            if category == "colors":
                found = _compare_color(name, expected_value, actual_value, options)
            else:
                found = _compare_length(category, name, expected_value, actual_value, options)
            if found is None:
                summary.matching += 1
            else:
                summary.mismatched += 1
                discrepancies.append(found)
        categories[category] = summary

    total = sum(item.total for item in categories.values())
    matching = sum(item.matching for item in categories.values())
    missing = sum(item.missing for item in categories.values())
    percentage = round_half_up(100 * matching / total) if total else 100
    return ComparisonResult(
        verified=percentage >= options.min_match_percentage,
        match_percentage=percentage,
        total_checked=total,
        matching_count=matching,
        missing_count=missing,
        discrepancies=discrepancies,
        categories=categories,
    )


def overall_severity(discrepancies: Iterable[Discrepancy]) -> Severity:
    severities = {item.severity for item in discrepancies}
    if "error" in severities:
        return "error"
    if "warning" in severities:
        return "warning"
    return "info"


_CATEGORY_TITLES = {"colors": "Colors", "spacing": "Spacing", "border_radius": "Border Radius"}


def comparison_summary(result: ComparisonResult) -> str:
    """Render ``result`` as a Markdown report."""
    status = "PASSED" if result.verified else "NEEDS ATTENTION"
    lines = [
        "## Design Verification Report",
        "",
        f"**Status:** {status}",
        f"**Match:** {result.match_percentage}% "
        f"({result.matching_count}/{result.total_checked} tokens)",
        "",
        "| Category | Total | Matching | Mismatched | Missing |",
        "|---|---|---|---|---|",
    ]
    for category in CHECKED_CATEGORIES:
        stats = result.categories.get(category, CategoryResult())
        lines.append(
            f"| {_CATEGORY_TITLES[category]} | {stats.total} | {stats.matching} "
            f"| {stats.mismatched} | {stats.missing} |"
        )
    if not result.discrepancies:
        lines.extend(["", "All checked tokens match the design specification."])
        return "\n".join(lines) + "\n"

    lines.extend(["", "### Discrepancies"])
    for category in CHECKED_CATEGORIES:
        items = [item for item in result.discrepancies if item.category == category]
        if not items:
            continue
        lines.extend(["", f"#### {_CATEGORY_TITLES[category]}"])
        for item in items:
            lines.append(
                f"- [{item.severity.upper()}] `{item.token_name}`: expected "
                f"`{item.expected_value}`, found `{item.actual_value}` ({item.difference})"
            )
    return "\n".join(lines) + "\n"
