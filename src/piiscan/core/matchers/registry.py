"""Matcher registry.

A MatcherRegistry is an explicit value handed to whatever composes a
pipeline; there is no package-level registry. Two registries never share
mutable state, although they may share the same (immutable) matchers.

Usage::

    from piiscan.core.matchers import build_default_registry

    registry = build_default_registry()
    matchers = registry.resolve(kinds={EntityKind.PHONE}, locales={"US"})
"""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Iterable, List, Optional

from ...exceptions import ConfigurationError, FilterConfigurationError
from ..types import EntityKind
from .base import PatternMatcher
from .patterns import BUILTIN_MATCHERS, LOCALE_ALIASES

logger = logging.getLogger(__name__)


class MatcherRegistry:
    """Pattern matchers indexed by name, kind and locale."""

    def __init__(self, matchers: Iterable[PatternMatcher] = ()):
        self._matchers: Dict[str, PatternMatcher] = {}
        self._aliases: Dict[str, str] = {}
        for matcher in matchers:
            self.register(matcher)

    def register(self, matcher: PatternMatcher) -> None:
        """Add a matcher. Raises ConfigurationError if its name is taken."""
        if matcher.name in self._matchers:
            raise ConfigurationError(
                f"Matcher name {matcher.name!r} already registered",
                details={"kind": matcher.kind.value, "locale": matcher.locale},
            )
        self._matchers[matcher.name] = matcher
        if matcher.locale is not None:
            self._aliases.setdefault(matcher.locale.lower(), matcher.locale)

    def get(self, name: str) -> PatternMatcher:
        if name not in self._matchers:
            raise KeyError(f"Unknown matcher: {name!r}. Available: {list(self._matchers)}")
        return self._matchers[name]

    def names(self) -> List[str]:
        return list(self._matchers)

    def __len__(self) -> int:
        return len(self._matchers)

    def __iter__(self):
        return iter(self._matchers.values())

    @property
    def locales(self) -> List[str]:
        """Registered locales in registration order."""
        seen: Dict[str, None] = {}
        for m in self._matchers.values():
            if m.locale is not None:
                seen.setdefault(m.locale, None)
        return list(seen)

    @property
    def kinds(self) -> List[EntityKind]:
        present = {m.kind for m in self._matchers.values()}
        return [k for k in EntityKind if k in present]

    def normalize_locale(self, locale: str) -> str:
        """Canonical locale for *locale*, case-insensitive. Raises FilterConfigurationError."""
        key = locale.strip().lower()
        canonical = self._aliases.get(key) or LOCALE_ALIASES.get(key)
        if canonical is None or canonical.lower() not in self._aliases:
            raise FilterConfigurationError(
                f"Unknown locale: {locale!r}",
                field="locales",
                value=locale,
                details={"available": self.locales},
            )
        return self._aliases[canonical.lower()]

    def resolve(
        self,
        kinds: Optional[Iterable[EntityKind]] = None,
        locales: Optional[Iterable[str]] = None,
    ) -> List[PatternMatcher]:
        """
        Matchers for the enabled kinds and locales.

        Empty or None filters enable everything. International matchers are
        included whatever the locale filter says.
        """
        kind_set: FrozenSet[EntityKind] = frozenset(kinds or ())
        locale_set = frozenset(self.normalize_locale(loc) for loc in (locales or ()))

        resolved = [
            m for m in self._matchers.values()
            if (not kind_set or m.kind in kind_set)
            and (m.locale is None or not locale_set or m.locale in locale_set)
        ]
        logger.debug(
            f"Resolved {len(resolved)} matchers "
            f"(kinds={sorted(k.value for k in kind_set) or 'all'}, "
            f"locales={sorted(locale_set) or 'all'})"
        )
        return resolved


def build_default_registry() -> MatcherRegistry:
    """Fresh registry holding every built-in matcher."""
    return MatcherRegistry(BUILTIN_MATCHERS)
