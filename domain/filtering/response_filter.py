"""Regex-based response filter: applies FilterRule lists to response text."""

import logging
from collections.abc import Sequence

from domain.filtering.patterns import (
    PatternCache,
    PatternCheck,
    is_dangerous_pattern,
    parse_flags,
    substitute,
)
from domain.filtering.rules import FilterResult, FilterRule

logger = logging.getLogger(__name__)

UNSAFE_PATTERN_MESSAGE = "Pattern contains a shape prone to catastrophic backtracking; simplify the expression"


class ResponseFilter:
    """Applies enabled rules in list order, skipping unsafe or invalid patterns."""

    def __init__(self, cache: PatternCache | None = None) -> None:
        self.cache = cache if cache is not None else PatternCache()

    def apply_filters(self, text: str, rules: Sequence[FilterRule] | None = None) -> FilterResult:
        if not rules:
            return FilterResult.unchanged(text)

        current = text
        applied = 0

        for rule in rules:
            if not rule.enabled:
                logger.debug("Skipping disabled rule: %s", rule.name or rule.id)
                continue

            before = current
            try:
                current = self.apply_rule(current, rule)
            except ValueError as e:
                logger.error('Error applying rule "%s": %s', rule.name or rule.id, e)
                continue

            if current != before:
                applied += 1
                logger.debug(
                    "Rule %s changed text: %d -> %d chars",
                    rule.name or rule.id,
                    len(before),
                    len(current),
                )

        return FilterResult(
            filtered_text=current,
            changed=current != text,
            applied_rules_count=applied,
            original_length=len(text),
            filtered_length=len(current),
        )

    def apply_rule(self, text: str, rule: FilterRule) -> str:
        """Apply a single rule; unsafe patterns leave the text untouched."""
        check = self.validate_pattern(rule.pattern, rule.flags)
        if not check.valid:
            if check.unsafe:
                logger.warning('Skipping dangerous pattern in rule "%s": %s', rule.name or rule.id, check.error)
                return text
            raise ValueError(check.error or f"Invalid regex pattern: {rule.pattern}")

        regex = self.cache.get(rule.pattern, rule.flags)
        return substitute(regex, text, rule.replacement, parse_flags(rule.flags))

    def validate_pattern(self, pattern: str, flags: str) -> PatternCheck:
        """Report whether a pattern is both safe and compilable."""
        if not pattern:
            return PatternCheck(valid=False, error="Pattern must be a non-empty string")
        if is_dangerous_pattern(pattern):
            return PatternCheck(valid=False, error=UNSAFE_PATTERN_MESSAGE, unsafe=True)
        try:
            self.cache.get(pattern, flags)
        except ValueError as e:
            return PatternCheck(valid=False, error=str(e))
        return PatternCheck(valid=True)

    def test_rule(self, text: str, rule: FilterRule) -> tuple[str, str | None]:
        """Preview a rule: returns (result, error) and never raises."""
        check = self.validate_pattern(rule.pattern, rule.flags)
        if not check.valid:
            return text, check.error or "Invalid regular expression"
        try:
            return self.apply_rule(text, rule), None
        except ValueError as e:
            return text, str(e)

    def clear_cache(self) -> None:
        self.cache.clear()
