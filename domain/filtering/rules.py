"""Filter rule and result models, plus the built-in rule templates."""

from pydantic import BaseModel, Field


class FilterRule(BaseModel):
    """A single regex rewrite rule applied to response text."""

    id: str = Field(..., description="Unique identifier.")
    name: str = Field(default="", description="Human-readable name shown in settings.")
    pattern: str = Field(..., description="Regular expression source.")
    replacement: str = Field(
        default="",
        description="Replacement text. Empty string deletes the match; $1, $<name>, $& reference the match.",
    )
    flags: str = Field(default="g", description="Flag letters: g=all matches, i, m, s, u, y.")
    enabled: bool = True


class FilterResult(BaseModel):
    """Outcome of running a rule list over one text."""

    filtered_text: str
    changed: bool
    applied_rules_count: int
    original_length: int
    filtered_length: int

    @classmethod
    def unchanged(cls, text: str) -> "FilterResult":
        return cls(
            filtered_text=text,
            changed=False,
            applied_rules_count=0,
            original_length=len(text),
            filtered_length=len(text),
        )


BUILTIN_FILTER_TEMPLATES: tuple[FilterRule, ...] = (
    FilterRule(
        id="remove-think-tags",
        name="Remove <think> blocks",
        pattern="<think>.*?</think>",
        replacement="",
        flags="gis",
        enabled=True,
    ),
    FilterRule(
        id="remove-thinking-tags",
        name="Remove <thinking> blocks",
        pattern="<thinking>.*?</thinking>",
        replacement="",
        flags="gis",
        enabled=True,
    ),
    FilterRule(
        id="remove-all-xml-tags",
        name="Remove all XML blocks",
        pattern="<[^>]+>.*?</[^>]+>",
        replacement="",
        flags="gis",
        enabled=False,
    ),
    FilterRule(
        id="remove-code-block-wrapper",
        name="Unwrap code blocks (keep content)",
        pattern="```(?:\\w+)?\\n?([\\s\\S]*?)```",
        replacement="$1",
        flags="g",
        enabled=False,
    ),
)


def builtin_template(template_id: str) -> FilterRule:
    """Return a copy of the built-in template with the given id."""
    for rule in BUILTIN_FILTER_TEMPLATES:
        if rule.id == template_id:
            return rule.model_copy()
    known = [r.id for r in BUILTIN_FILTER_TEMPLATES]
    raise KeyError(f"Unknown filter template '{template_id}'. Available: {known}")
