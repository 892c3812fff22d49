"""Built-in filter middleware."""

import re
from collections.abc import Awaitable, Callable, Sequence

from domain.filtering.patterns import PatternCache, is_dangerous_pattern
from domain.filtering.pipeline import FilterContext, FilterMiddleware
from domain.filtering.response_filter import ResponseFilter
from domain.filtering.rules import FilterRule

REGEX_FILTER_RESULT_KEY = "regex_filter"

TransformFn = Callable[[str, FilterContext], str | Awaitable[str]]


class RegexFilterMiddleware(FilterMiddleware):
    """Runs a rule list through ResponseFilter and records the FilterResult in the context."""

    name = "RegexFilter"

    def __init__(self, rules: Sequence[FilterRule], response_filter: ResponseFilter | None = None) -> None:
        self.rules = list(rules)
        self.response_filter = response_filter if response_filter is not None else ResponseFilter()

    def process(self, response: str, context: FilterContext) -> str:
        result = self.response_filter.apply_filters(response, self.rules)
        context.metadata[REGEX_FILTER_RESULT_KEY] = result
        return result.filtered_text

    def validate(self) -> bool | str:
        # Unsafe patterns are skipped with a warning at apply time, not rejected here
        probe = PatternCache()
        for rule in self.rules:
            if not rule.pattern:
                return "Invalid rule: pattern must be a non-empty string"
            if not rule.enabled or is_dangerous_pattern(rule.pattern):
                continue
            try:
                probe.get(rule.pattern, rule.flags)
            except ValueError as e:
                return f'Invalid regex pattern "{rule.pattern}": {e}'
        return True


class CodeBlockNormalizerMiddleware(FilterMiddleware):
    """Puts code fences on their own line and drops empty code blocks."""

    name = "CodeBlockNormalizer"

    _FENCE_AFTER_TEXT = re.compile(r"([^\n])```")
    _EMPTY_BLOCK = re.compile(r"```\w*\n\s*\n```")

    def process(self, response: str, context: FilterContext) -> str:
        normalized = self._FENCE_AFTER_TEXT.sub("\\1\n```", response)
        return self._EMPTY_BLOCK.sub("", normalized)


class MarkdownLinkFixerMiddleware(FilterMiddleware):
    """Repairs markdown links with a missing closing parenthesis or padded brackets."""

    name = "MarkdownLinkFixer"

    _UNCLOSED = re.compile(r"\[([^\]]+)\]\(([^)\s]+)(?=\s|$)")
    _PADDED = re.compile(r"\[\s+([^\]]+?)\s+\]\(\s*([^)]+?)\s*\)")

    def process(self, response: str, context: FilterContext) -> str:
        fixed = self._UNCLOSED.sub(r"[\1](\2)", response)
        return self._PADDED.sub(r"[\1](\2)", fixed)


class WhitespaceTrimmerMiddleware(FilterMiddleware):
    """Strips trailing spaces, caps consecutive blank lines and trims the ends."""

    name = "WhitespaceTrimmer"

    _TRAILING = re.compile(r"[ \t]+$", re.MULTILINE)

    def __init__(self, max_consecutive_blank_lines: int = 2) -> None:
        self.max_consecutive_blank_lines = max_consecutive_blank_lines
        self._blank_run = re.compile(r"(\n\s*){%d,}" % (max_consecutive_blank_lines + 1))

    def process(self, response: str, context: FilterContext) -> str:
        trimmed = self._TRAILING.sub("", response)
        trimmed = self._blank_run.sub("\n" * (self.max_consecutive_blank_lines + 1), trimmed)
        return trimmed.strip()

    def validate(self) -> bool | str:
        if self.max_consecutive_blank_lines < 0:
            return "max_consecutive_blank_lines must be >= 0"
        return True


class CustomFunctionMiddleware(FilterMiddleware):
    """Wraps a user-supplied transform; it may be sync or async."""

    def __init__(self, name: str, transform: TransformFn) -> None:
        self.name = name
        self._transform = transform

    def process(self, response: str, context: FilterContext) -> str | Awaitable[str]:
        return self._transform(response, context)


class ConditionalMiddleware(FilterMiddleware):
    """Delegates to another stage only when the condition holds for the context."""

    def __init__(self, middleware: FilterMiddleware, condition: Callable[[FilterContext], bool]) -> None:
        self.name = f"Conditional({middleware.name})"
        self.middleware = middleware
        self._condition = condition

    def process(self, response: str, context: FilterContext) -> str | Awaitable[str]:
        if self._condition(context):
            return self.middleware.process(response, context)
        return response

    def validate(self) -> bool | str:
        return self.middleware.validate()


class PresetSpecificMiddleware(ConditionalMiddleware):
    """Applies a stage for requests without a preset or with one of the allowed presets."""

    def __init__(self, middleware: FilterMiddleware, allowed_preset_ids: Sequence[str]) -> None:
        allowed = frozenset(allowed_preset_ids)
        super().__init__(middleware, lambda ctx: ctx.preset_id is None or ctx.preset_id in allowed)
