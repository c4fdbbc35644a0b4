"""
Pattern matchers and the per-locale pattern tables.

Matchers:
- PatternMatcher: one compiled pattern for one (kind, locale)
- MatcherRegistry: explicit registry resolving kind/locale filters
- BUILTIN_MATCHERS: every built-in matcher, compiled once at import
"""

from .base import PatternMatcher, compile_matcher
from .patterns import BUILTIN_MATCHERS, LOCALES, classify_card_network, is_card_like_phone
from .registry import MatcherRegistry, build_default_registry

__all__ = [
    "PatternMatcher",
    "compile_matcher",
    "MatcherRegistry",
    "build_default_registry",
    "BUILTIN_MATCHERS",
    "LOCALES",
    "classify_card_network",
    "is_card_like_phone",
]
