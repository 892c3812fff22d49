import pytest

from domain.filtering import BUILTIN_FILTER_TEMPLATES, FilterRule, PatternCache, ResponseFilter, builtin_template
from domain.filtering.patterns import is_dangerous_pattern


def test_think_block_is_removed() -> None:
    rule = FilterRule(id="think", pattern="<think>.*?</think>", replacement="", flags="gis")

    result = ResponseFilter().apply_filters("A<think>secret</think>B", [rule])

    assert result.filtered_text == "AB"
    assert result.changed is True
    assert result.applied_rules_count == 1
    assert (result.original_length, result.filtered_length) == (23, 2)


def test_disabled_rules_are_skipped() -> None:
    rules = [
        FilterRule(id="off", pattern="baz", replacement="qux", enabled=False),
        FilterRule(id="on", pattern="foo", replacement="bar"),
    ]

    result = ResponseFilter().apply_filters("foo baz", rules)

    assert result.filtered_text == "bar baz"
    assert result.applied_rules_count == 1


def test_no_rules_returns_input_unchanged() -> None:
    result = ResponseFilter().apply_filters("text", [])

    assert result.filtered_text == "text"
    assert result.changed is False
    assert result.applied_rules_count == 0


def test_rules_apply_in_list_order() -> None:
    rules = [
        FilterRule(id="1", pattern="a", replacement="b"),
        FilterRule(id="2", pattern="b", replacement="c"),
    ]

    assert ResponseFilter().apply_filters("aa", rules).filtered_text == "cc"


def test_without_g_flag_only_first_match_is_replaced() -> None:
    rule = FilterRule(id="once", pattern="x", replacement="y", flags="")

    assert ResponseFilter().apply_rule("xxx", rule) == "yxx"


@pytest.mark.parametrize(
    ("pattern", "replacement", "text", "expected"),
    [
        (r"(\w)@(\w)", "$2 at $1", "a@b", "b at a"),
        ("o", "[$&]", "foo", "f[o][o]"),
        (r"(?<word>\w+)!", "$<word>?", "hey!", "hey?"),
        ("a", "$$", "a", "$"),
    ],
)
def test_replacement_templates(pattern: str, replacement: str, text: str, expected: str) -> None:
    rule = FilterRule(id="r", pattern=pattern, replacement=replacement)

    assert ResponseFilter().apply_rule(text, rule) == expected


def test_case_insensitive_multiline_think_tags() -> None:
    rule = builtin_template("remove-thinking-tags")

    text = "<THINKING>\nstep 1\nstep 2\n</THINKING>Result"

    assert ResponseFilter().apply_rule(text, rule) == "Result"


def test_filtering_is_idempotent_for_removal_rules() -> None:
    rules = [r for r in BUILTIN_FILTER_TEMPLATES if r.enabled]
    f = ResponseFilter()
    once = f.apply_filters("x<think>a</think>y<thinking>b</thinking>z", rules).filtered_text

    assert once == "xyz"
    assert f.apply_filters(once, rules).filtered_text == once


@pytest.mark.parametrize("pattern", ["(a+)+", "(a*)*b", "a++", r"\w+\s*\w+"])
def test_dangerous_patterns_are_flagged(pattern: str) -> None:
    assert is_dangerous_pattern(pattern)

    check = ResponseFilter().validate_pattern(pattern, "g")
    assert check.valid is False
    assert check.unsafe is True


def test_dangerous_rule_leaves_text_untouched() -> None:
    rule = FilterRule(id="bad", pattern="(a+)+$", replacement="")

    result = ResponseFilter().apply_filters("aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa!", [rule])

    assert result.filtered_text.endswith("!")
    assert result.changed is False


def test_invalid_pattern_is_reported_and_skipped() -> None:
    f = ResponseFilter()
    rules = [
        FilterRule(id="broken", pattern="[unclosed"),
        FilterRule(id="ok", pattern="x", replacement="y"),
    ]

    assert f.validate_pattern("[unclosed", "g").valid is False
    assert f.validate_pattern("ok", "gq").error.startswith("Invalid regex flag")
    assert f.apply_filters("x", rules).filtered_text == "y"


def test_test_rule_never_raises() -> None:
    f = ResponseFilter()

    assert f.test_rule("abc", FilterRule(id="t", pattern="b", replacement="B")) == ("aBc", None)
    text, error = f.test_rule("abc", FilterRule(id="t", pattern="(", replacement=""))
    assert text == "abc"
    assert error


def test_compiled_patterns_are_cached_per_pattern_and_flags() -> None:
    cache = PatternCache()
    f = ResponseFilter(cache)
    rule = FilterRule(id="c", pattern="a", replacement="b", flags="g")

    f.apply_rule("a", rule)
    f.apply_rule("aa", rule)

    assert cache.compiles == 1
    assert cache.get("a", "g") is cache.get("a", "g")
    assert cache.get("a", "gi") is not cache.get("a", "g")
    assert len(cache) == 2

    f.clear_cache()
    assert len(cache) == 0


def test_injected_empty_cache_is_used_and_counts_hits() -> None:
    cache = PatternCache()
    f = ResponseFilter(cache)
    rule = FilterRule(id="c", pattern="x", replacement="y", flags="g")

    assert f.cache is cache
    f.apply_filters("x", [rule])
    hits_after_first = cache.hits
    f.apply_filters("xx", [rule])

    assert cache.compiles == 1
    assert cache.hits > hits_after_first


def test_builtin_code_block_unwrap_template_is_flagged_unsafe() -> None:
    rule = builtin_template("remove-code-block-wrapper")

    assert rule.enabled is False
    assert is_dangerous_pattern(rule.pattern)


def test_unknown_template_raises_key_error() -> None:
    with pytest.raises(KeyError):
        builtin_template("no-such-template")
