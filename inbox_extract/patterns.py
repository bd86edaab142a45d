"""Named extraction rules and the ordered catalog that holds them.

Rules are compiled when they are constructed, so a bad expression fails at
startup with :class:`~inbox_extract.errors.ConfigError` rather than halfway
through a batch.  Matching is always case-insensitive.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field

from .config import ExtractorConfig, PatternOverride
from .errors import ConfigError


@dataclass(frozen=True)
class PatternRule:
    """A named regular expression whose first capture group is the value."""

    name: str
    expression: str
    description: str = ""
    compiled: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigError("pattern rule name must not be empty")
        try:
            compiled = re.compile(self.expression, re.IGNORECASE)
        except re.error as exc:
            raise ConfigError(f"pattern rule {self.name!r} has an invalid expression: {exc}") from exc
        if compiled.groups < 1:
            raise ConfigError(f"pattern rule {self.name!r} needs at least one capture group")
        object.__setattr__(self, "compiled", compiled)


class PatternCatalog:
    """Ordered set of uniquely named :class:`PatternRule` objects."""

    def __init__(self, rules: Iterable[PatternRule] = ()) -> None:
        self._rules: dict[str, PatternRule] = {}
        for rule in rules:
            if rule.name in self._rules:
                raise ConfigError(f"duplicate pattern rule name: {rule.name!r}")
            self._rules[rule.name] = rule

    def rules(self) -> tuple[PatternRule, ...]:
        return tuple(self._rules.values())

    def get(self, name: str) -> PatternRule | None:
        return self._rules.get(name)

    def merge(self, overrides: Iterable[PatternRule]) -> PatternCatalog:
        """Return a new catalog with *overrides* applied by name.

        Last writer wins: an overriding rule replaces the existing rule in
        place, and rules with new names are appended in the order given.
        """
        merged = dict(self._rules)
        for rule in overrides:
            merged[rule.name] = rule
        return PatternCatalog(merged.values())

    def __iter__(self) -> Iterator[PatternRule]:
        return iter(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, name: object) -> bool:
        return name in self._rules

    def __repr__(self) -> str:
        return f"PatternCatalog({list(self._rules)!r})"


_DATE_VALUE = (
    r"\d{4}-\d{1,2}-\d{1,2}(?:[ T]\d{1,2}:\d{2}(?::\d{2})?)?"
    r"|\d{1,2}[/.]\d{1,2}[/.]\d{2,4}"
    r"|[a-z]{3,9}\.?\s+\d{1,2},?\s+\d{4}"
    r"|\d{1,2}\s+[a-z]{3,9}\.?\s+\d{4}"
)

DEFAULT_RULES: tuple[tuple[str, str, str], ...] = (
    ("name", r"\bHi\s+([^,<]+),", "Customer name"),
    ("username", r"NAME:\s*(\d+)", "Username/ID"),
    ("access_code", r"ACCESS?:\s*(\d+)", "Access code"),
    ("date", rf"\bDate?:\s*({_DATE_VALUE})", "Date"),
    ("order_number", r"Order\s*Number?:\s*(\d+)", "Order number"),
    ("total_amount", r"\bTotal?:\s*([^<\s]+)", "Total amount"),
    ("payment_method", r"\bvia\s+([^<\s,.;]+)", "Payment method"),
    (
        "email",
        r"\bEmail?:\s*([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})",
        "Email address",
    ),
    ("phone", r"\bPhone?:\s*([\d\s\-+()]+)", "Phone number"),
    ("transaction_id", r"Transaction\s*ID?:\s*([a-zA-Z0-9\-]+)", "Transaction ID"),
)


def default_catalog() -> PatternCatalog:
    """The built-in rule set for order/receipt style notification emails."""
    return PatternCatalog(PatternRule(name, expr, desc) for name, expr, desc in DEFAULT_RULES)


def rules_from_mapping(overrides: Mapping[str, PatternOverride]) -> list[PatternRule]:
    """Convert configured overrides (name → expression/description) to rules."""
    return [
        PatternRule(name=name, expression=override.expression, description=override.description)
        for name, override in overrides.items()
    ]


def build_catalog(config: ExtractorConfig) -> PatternCatalog:
    """Default catalog with ``pattern_catalog_overrides`` merged in."""
    return default_catalog().merge(rules_from_mapping(config.pattern_catalog_overrides))
