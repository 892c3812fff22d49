"""
Regex helpers for the response filter.

Rules are written with JavaScript-style flags and replacement syntax
(``$1``, ``$&``, ``$<name>``), so this module:
- screens patterns for catastrophic-backtracking shapes,
- translates flag letters to ``re`` flags,
- caches compiled patterns per exact (pattern, flags) pair,
- expands replacement templates against a match.
"""

import re
from dataclasses import dataclass
from typing import NamedTuple

# Shapes that tend to cause exponential backtracking (ReDoS).
_DANGEROUS_SHAPES: tuple[re.Pattern[str], ...] = (
    re.compile(r"(\+|\*|\{[0-9,]+\})\1"),  # same quantifier twice: a++, a**
    re.compile(r"\([^)]*(\+|\*).*\)\1"),  # quantified group, quantified again: (a+)+, (a*)*
    re.compile(r"(\+|\*).*(\+|\*)"),  # several unbounded quantifiers: a+.*b+
)

_FLAG_BITS: dict[str, int] = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "u": 0,  # str patterns are unicode-aware already
    "g": 0,
    "y": 0,
}

# (?<name>...) is not valid Python; lookbehinds (?<= / (?<! are left alone
_JS_NAMED_GROUP = re.compile(r"\(\?<(?=[A-Za-z_])")
_JS_NAMED_BACKREF = re.compile(r"\\k<([A-Za-z_]\w*)>")

_REPLACEMENT_TOKEN = re.compile(r"\$(\$|&|`|'|\d{1,2}|<[^>]*>)")


class RegexFlags(NamedTuple):
    bits: int
    replace_all: bool
    sticky: bool


@dataclass(frozen=True)
class PatternCheck:
    valid: bool
    error: str | None = None
    unsafe: bool = False


def is_dangerous_pattern(pattern: str) -> bool:
    return any(shape.search(pattern) for shape in _DANGEROUS_SHAPES)


def parse_flags(flags: str) -> RegexFlags:
    """Translate flag letters; unknown or repeated letters are rejected."""
    bits = 0
    seen: set[str] = set()
    for ch in flags or "":
        if ch not in _FLAG_BITS:
            raise ValueError(f"Invalid regex flag '{ch}' in '{flags}'")
        if ch in seen:
            raise ValueError(f"Duplicate regex flag '{ch}' in '{flags}'")
        seen.add(ch)
        bits |= _FLAG_BITS[ch]
    return RegexFlags(bits=bits, replace_all="g" in seen, sticky="y" in seen)


def to_python_pattern(pattern: str) -> str:
    pattern = _JS_NAMED_GROUP.sub("(?P<", pattern)
    return _JS_NAMED_BACKREF.sub(r"(?P=\1)", pattern)


class PatternCache:
    """Compiled-pattern cache keyed by the exact (pattern, flags) pair."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], re.Pattern[str]] = {}
        self.hits = 0
        self.compiles = 0

    def get(self, pattern: str, flags: str) -> re.Pattern[str]:
        key = (pattern, flags)
        cached = self._entries.get(key)
        if cached is not None:
            self.hits += 1
            return cached

        parsed = parse_flags(flags)
        try:
            compiled = re.compile(to_python_pattern(pattern), parsed.bits)
        except re.error as e:
            raise ValueError(f"Invalid regex pattern: {pattern} with flags: {flags} ({e})") from e

        self.compiles += 1
        self._entries[key] = compiled
        return compiled

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


def expand_replacement(match: re.Match[str], replacement: str) -> str:
    """Expand a JavaScript-style replacement template for one match."""
    if "$" not in replacement:
        return replacement

    group_count = match.re.groups

    def _group(n: int) -> str:
        return match.group(n) or ""

    def _token(tok: re.Match[str]) -> str:
        t = tok.group(1)
        if t == "$":
            return "$"
        if t == "&":
            return match.group(0)
        if t == "`":
            return match.string[: match.start()]
        if t == "'":
            return match.string[match.end() :]
        if t.startswith("<"):
            if not match.re.groupindex:
                return tok.group(0)
            return match.groupdict().get(t[1:-1]) or ""

        n = int(t)
        if 1 <= n <= group_count:
            return _group(n)
        if len(t) == 2:
            first = int(t[0])
            if 1 <= first <= group_count:
                return _group(first) + t[1]
        return tok.group(0)

    return _REPLACEMENT_TOKEN.sub(_token, replacement)


def substitute(regex: re.Pattern[str], text: str, replacement: str, flags: RegexFlags) -> str:
    """Replace matches of ``regex`` in ``text`` honoring the g/y flag semantics."""

    def _expand(m: re.Match[str]) -> str:
        return expand_replacement(m, replacement)

    if not flags.sticky:
        return regex.sub(_expand, text, count=0 if flags.replace_all else 1)

    # Sticky: matches must be contiguous from the start of the text.
    parts: list[str] = []
    pos = 0
    while True:
        m = regex.match(text, pos)
        if m is None:
            break
        parts.append(_expand(m))
        if m.end() == pos or not flags.replace_all:
            pos = m.end()
            break
        pos = m.end()
    return "".join(parts) + text[pos:]
