"""Immutable pattern matchers.

A PatternMatcher wraps one compiled pattern together with the kind and
locale it serves. Matchers are frozen, hold no per-call state, and are
shared across threads without locking.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Optional, Tuple

from ...exceptions import PatternConfigurationError
from ..types import EntityKind

logger = logging.getLogger(__name__)

Span = Tuple[int, int]


@dataclass(frozen=True, eq=False)
class PatternMatcher:
    """
    One compiled pattern for one (kind, locale) pair.

    Attributes:
        name: Unique matcher name, e.g. "phone.US"
        kind: Entity kind every match is tagged with
        locale: Locale served, or None for international patterns
        pattern: Compiled regular expression
        attributes: Static tags copied onto each occurrence
        group: Capture group holding the value (0 = whole match)
        validator: Rejects a matched value when it returns False
        classifier: Derives extra tags from a matched value
    """

    name: str
    kind: EntityKind
    locale: Optional[str]
    pattern: re.Pattern[str]
    attributes: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    group: int = 0
    validator: Callable[[str], bool] | None = None
    classifier: Callable[[str], Dict[str, str]] | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise PatternConfigurationError("Matcher must have a name")
        if not isinstance(self.kind, EntityKind):
            raise PatternConfigurationError(
                f"Matcher kind must be an EntityKind, got {type(self.kind).__name__}",
                matcher_name=self.name,
            )
        if self.group > self.pattern.groups:
            raise PatternConfigurationError(
                f"Pattern has {self.pattern.groups} groups, matcher reads group {self.group}",
                matcher_name=self.name,
                pattern=self.pattern.pattern,
            )
        if not isinstance(self.attributes, MappingProxyType):
            object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    @property
    def is_international(self) -> bool:
        return self.locale is None

    def find_all(self, text: str) -> List[Span]:
        """Non-overlapping, leftmost-first (start, end) spans of accepted matches."""
        spans: List[Span] = []
        for match in self.pattern.finditer(text):
            start, end = match.span(self.group)
            if start < 0 or start == end:
                continue
            if self.validator is not None and not self.validator(text[start:end]):
                continue
            spans.append((start, end))
        return spans

    def tag(self, value: str) -> Dict[str, str]:
        """Attributes for one matched value."""
        tags = dict(self.attributes)
        if self.classifier is not None:
            tags.update(self.classifier(value))
        return tags

    def __repr__(self) -> str:
        return f"PatternMatcher(name={self.name!r}, kind={self.kind.value!r}, locale={self.locale!r})"


def compile_matcher(
    name: str,
    regex: str,
    kind: EntityKind,
    locale: Optional[str] = None,
    attributes: Mapping[str, str] | None = None,
    group: int = 0,
    validator: Callable[[str], bool] | None = None,
    classifier: Callable[[str], Dict[str, str]] | None = None,
    flags: int = 0,
) -> PatternMatcher:
    """Compile *regex* into a matcher. Bad patterns fail here, never at match time."""
    try:
        compiled = re.compile(regex, flags)
    except re.error as e:
        raise PatternConfigurationError(
            f"Invalid pattern: {e}",
            matcher_name=name,
            pattern=regex,
        ) from e
    return PatternMatcher(
        name=name,
        kind=kind,
        locale=locale,
        pattern=compiled,
        attributes=attributes or {},
        group=group,
        validator=validator,
        classifier=classifier,
    )
