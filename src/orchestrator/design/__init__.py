from orchestrator.design.comparator import (
    ComparisonOptions,
    ComparisonResult,
    Discrepancy,
    compare_tokens,
    comparison_summary,
    overall_severity,
)
from orchestrator.design.extractor import extract_tokens
from orchestrator.design.tokens import DesignTokenSet, FontToken, default_tokens

__all__ = [
    "ComparisonOptions",
    "ComparisonResult",
    "DesignTokenSet",
    "Discrepancy",
    "FontToken",
    "compare_tokens",
    "comparison_summary",
    "default_tokens",
    "extract_tokens",
    "overall_severity",
]
