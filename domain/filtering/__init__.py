"""
Response filtering engine.

Provides:
- FilterRule / FilterResult models and built-in rule templates
- ResponseFilter: regex rules with ReDoS screening and a compiled-pattern cache
- FilterPipeline: ordered middleware chain with per-stage error isolation
"""

from domain.filtering.middleware import (
    CodeBlockNormalizerMiddleware,
    ConditionalMiddleware,
    CustomFunctionMiddleware,
    MarkdownLinkFixerMiddleware,
    PresetSpecificMiddleware,
    RegexFilterMiddleware,
    WhitespaceTrimmerMiddleware,
)
from domain.filtering.patterns import PatternCache, PatternCheck, is_dangerous_pattern
from domain.filtering.pipeline import FilterContext, FilterMiddleware, FilterPipeline
from domain.filtering.response_filter import ResponseFilter
from domain.filtering.rules import (
    BUILTIN_FILTER_TEMPLATES,
    FilterResult,
    FilterRule,
    builtin_template,
)

__all__ = [
    # Models
    "FilterRule",
    "FilterResult",
    "BUILTIN_FILTER_TEMPLATES",
    "builtin_template",
    # Regex filter
    "ResponseFilter",
    "PatternCache",
    "PatternCheck",
    "is_dangerous_pattern",
    # Pipeline
    "FilterPipeline",
    "FilterMiddleware",
    "FilterContext",
    # Built-in middleware
    "RegexFilterMiddleware",
    "CodeBlockNormalizerMiddleware",
    "MarkdownLinkFixerMiddleware",
    "WhitespaceTrimmerMiddleware",
    "CustomFunctionMiddleware",
    "ConditionalMiddleware",
    "PresetSpecificMiddleware",
]
