"""Built-in pattern tables, one section per locale.

Every matcher is compiled once at import and lives in the module-level
BUILTIN_MATCHERS tuple. Matchers are frozen and safe to share across
registries and threads.

Locale codes are the display names used for the ``country`` attribute
(US, UK, France, Spain, Italy, Germany, China, India, Arabic, Russia).
International matchers (locale None) apply whatever locales are enabled.

Scripts without ASCII word boundaries (Chinese, Arabic, Russian street
names) are matched as runs of non-ASCII text ending in a street keyword.
"""

from __future__ import annotations

import re
from typing import Dict, Optional, Tuple

from ..types import ATTR_COUNTRY, ATTR_NETWORK, ATTR_VERSION, EntityKind
from .base import PatternMatcher, compile_matcher

__all__ = [
    "LOCALES",
    "LOCALE_ALIASES",
    "BUILTIN_MATCHERS",
    "is_card_like_phone",
    "classify_card_network",
    "iban_country",
]

# =============================================================================
# LOCALES
# =============================================================================

US = "US"
UK = "UK"
FRANCE = "France"
SPAIN = "Spain"
ITALY = "Italy"
GERMANY = "Germany"
CHINA = "China"
INDIA = "India"
ARABIC = "Arabic"
RUSSIA = "Russia"

LOCALES: Tuple[str, ...] = (US, UK, FRANCE, SPAIN, ITALY, GERMANY, CHINA, INDIA, ARABIC, RUSSIA)

# Lowercase lookup keys -> canonical locale
LOCALE_ALIASES: Dict[str, str] = {
    **{loc.lower(): loc for loc in LOCALES},
    "usa": US,
    "gb": UK,
    "fr": FRANCE,
    "es": SPAIN,
    "it": ITALY,
    "de": GERMANY,
    "cn": CHINA,
    "in": INDIA,
    "ar": ARABIC,
    "ru": RUSSIA,
}


# =============================================================================
# VALIDATORS & CLASSIFIERS
# =============================================================================

_TEST_CARD_PREFIXES = frozenset({"4111", "4000", "5555", "5105", "1111", "1234"})


def is_card_like_phone(value: str) -> bool:
    """True when a phone-shaped match is really a card fragment or filler digits."""
    digits = "".join(c for c in value if "0" <= c <= "9")
    if len(digits) >= 14:
        return True
    if len(digits) >= 4:
        if digits[:4] in _TEST_CARD_PREFIXES:
            return True
        if digits == digits[0] * len(digits):
            return True
    if len(digits) == 8 and digits[:4] == digits[4:]:
        return True
    return False


def _phone_validator(value: str) -> bool:
    return not is_card_like_phone(value)


_VISA_RE = re.compile(r"4\d{3}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}")
_MASTERCARD_RE = re.compile(r"5[1-5]\d{2}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}")


def classify_card_network(value: str) -> Dict[str, str]:
    if _VISA_RE.fullmatch(value):
        return {ATTR_NETWORK: "visa"}
    if _MASTERCARD_RE.fullmatch(value):
        return {ATTR_NETWORK: "mastercard"}
    return {ATTR_NETWORK: "generic"}


def iban_country(value: str) -> Dict[str, str]:
    return {ATTR_COUNTRY: value[:2].upper()}


# =============================================================================
# HELPERS
# =============================================================================

_I = re.IGNORECASE

# Runs of non-ASCII text; whitespace allowed inside, ASCII letters, digits and
# punctuation end the run.
_NON_ASCII_RUN = r"[^\x00-\x7F][^\x00-\x08\x0e-\x1f\x21-\x7F]*"


def _m(
    kind: EntityKind,
    regex: str,
    locale: Optional[str] = None,
    flags: int = 0,
    group: int = 0,
    validator=None,
    classifier=None,
    attributes: Optional[Dict[str, str]] = None,
) -> PatternMatcher:
    """Shorthand for defining a matcher; locale matchers are tagged with their country."""
    name = kind.value if locale is None else f"{kind.value}.{locale}"
    tags = dict(attributes or {})
    if locale is not None:
        tags.setdefault(ATTR_COUNTRY, locale)
    return compile_matcher(
        name=name,
        regex=regex,
        kind=kind,
        locale=locale,
        attributes=tags,
        group=group,
        validator=validator,
        classifier=classifier,
        flags=flags,
    )


# =============================================================================
# INTERNATIONAL
# =============================================================================

_EMAIL = (
    r"\b([A-Za-z0-9!#$%&'*+/=?^_{|.}~-]+@"
    r"(?:[a-z0-9](?:[a-z0-9-]*[a-z0-9])?\.)+[a-z0-9](?:[a-z0-9-]*[a-z0-9])?)\b"
)

_CREDIT_CARD = r"\b(?:(?:\d{4}[\s-]?){3}\d{4}|\d{15,16})\b"

_OCTET = r"(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)"
_IPV4 = rf"\b(?:{_OCTET}\.){{3}}{_OCTET}\b"

_H = r"[0-9A-Fa-f]{1,4}"
_IPV6 = (
    r"(?<![0-9A-Fa-f:])(?:"
    rf"(?:{_H}:){{7}}{_H}"
    rf"|(?:{_H}:){{1,7}}:"
    rf"|(?:{_H}:){{1,6}}:{_H}"
    rf"|(?:{_H}:){{1,5}}(?::{_H}){{1,2}}"
    rf"|(?:{_H}:){{1,4}}(?::{_H}){{1,3}}"
    rf"|(?:{_H}:){{1,3}}(?::{_H}){{1,4}}"
    rf"|(?:{_H}:){{1,2}}(?::{_H}){{1,5}}"
    rf"|{_H}:(?::{_H}){{1,6}}"
    rf"|:(?:(?::{_H}){{1,7}}|:)"
    r")(?:%[0-9A-Za-z]+)?(?![0-9A-Fa-f:])"
)

_BTC = r"\b[13][a-km-zA-HJ-NP-Z1-9]{25,34}\b"

_IBAN = r"\b[A-Z]{2}\d{2}[A-Z0-9]{4,}\d{7,}[A-Z0-9]*\b"

INTERNATIONAL = (
    _m(EntityKind.EMAIL, _EMAIL, flags=_I, group=1),
    _m(EntityKind.CREDIT_CARD, _CREDIT_CARD, classifier=classify_card_network),
    _m(EntityKind.IP_ADDRESS, _IPV4, attributes={ATTR_VERSION: "ipv4"}),
    _m(EntityKind.BTC_ADDRESS, _BTC),
    _m(EntityKind.IBAN, _IBAN, classifier=iban_country),
)

# Two IP matchers share a kind, so names are set explicitly
INTERNATIONAL += (
    compile_matcher(
        name="ip_address.v6",
        regex=_IPV6,
        kind=EntityKind.IP_ADDRESS,
        attributes={ATTR_VERSION: "ipv6"},
    ),
)

# =============================================================================
# US
# =============================================================================

US_MATCHERS = (
    _m(
        EntityKind.PHONE,
        r"\b(?:(?:\+?1[-.\s]?)?(?:\([2-9]\d{2}\)|[2-9]\d{2})[-.\s]?[2-9]\d{2}[-.\s]?\d{4})\b",
        US,
        validator=_phone_validator,
    ),
    _m(EntityKind.SSN, r"\b\d{3}-\d{2}-\d{4}\b", US),
    _m(EntityKind.ZIP_CODE, r"\b\d{5}(?:[-\s]\d{4})?\b", US),
    _m(
        EntityKind.STREET_ADDRESS,
        r"\b\d{1,4}\s+[a-z\s]+?\s+(?:street|st|avenue|ave|road|rd|highway|hwy|square|sq"
        r"|trail|trl|drive|dr|court|ct|park|parkway|pkwy|circle|cir|boulevard|blvd)\b",
        US,
        flags=_I,
    ),
    _m(EntityKind.PO_BOX, r"P\.? ?O\.? Box \d+", US, flags=_I),
)

# =============================================================================
# EUROPE
# =============================================================================

UK_MATCHERS = (
    _m(EntityKind.ZIP_CODE, r"\b([A-Z]{1,2}\d[A-Z\d]?\s?\d[A-Z]{2})\b", UK, flags=_I, group=1),
    _m(
        EntityKind.STREET_ADDRESS,
        r"\b\d{1,4}[a-z]?\s+[a-z\-]+(?:\s+[a-z\-]+)*\s+(?:street|st|road|rd|lane|ln|avenue|ave"
        r"|place|pl|square|sq|crescent|cres|close|cl|way|drive|dr|court|ct|terrace|ter"
        r"|gardens|gdns|mews|hill|park|green|common|grove|rise|view|walk|bridge|manor|vale"
        r"|row|circus|gate|heights|fields|meadow|cottage|house|villa|lodge|chambers"
        r"|buildings|flats|towers|hall)\b",
        UK,
        flags=_I,
    ),
)

FRANCE_MATCHERS = (
    _m(EntityKind.ZIP_CODE, r"\b(?:0[1-9]|[1-8]\d|9[0-8])\d{3}\b", FRANCE),
    _m(
        EntityKind.STREET_ADDRESS,
        r"\b\d{1,4}\s+(?:rue|avenue|boulevard|place|impasse|allée|cours|quai|passage|square"
        r"|villa|cité|résidence|hameau|chemin|route|voie|esplanade|promenade|parvis|mail"
        r"|galerie|sentier|traverse|venelle)\s+(?:de\s+)?(?:la\s+|le\s+|les\s+|du\s+|des\s+)?"
        r"[a-zéèàçôöùûîôâêë\-']+(?:\s+[a-zéèàçôöùûîôâêë\-']+){0,2}",
        FRANCE,
        flags=_I,
    ),
)

SPAIN_MATCHERS = (
    _m(EntityKind.ZIP_CODE, r"\b(?:0[1-9]|[1-4]\d|5[0-2])\d{3}\b", SPAIN),
    _m(
        EntityKind.STREET_ADDRESS,
        r"\b\d{1,4}\s+(?:calle|avenida|plaza|paseo|ronda|travesía|glorieta|carretera|camino"
        r"|vía|callejón|callejuela|costanilla|corredera|rambla|alameda|boulevard|pasaje)\s+"
        r"(?:de\s+)?(?:la\s+|el\s+|los\s+|las\s+|del\s+|de\s+los\s+|de\s+las\s+)?"
        r"[a-zñáéíóúü\-']+(?:\s+[a-zñáéíóúü\-']+){0,2}",
        SPAIN,
        flags=_I,
    ),
)

ITALY_MATCHERS = (
    _m(EntityKind.ZIP_CODE, r"\b(?:0[0-9]|[1-9]\d)\d{3}\b", ITALY),
    _m(
        EntityKind.STREET_ADDRESS,
        r"\b\d{1,4}\s+(?:via|viale|piazza|corso|largo|strada|vicolo|piazzale|lungotevere"
        r"|circonvallazione|passeggiata|salita|discesa|scalinata|rampa)\s+"
        r"(?:del\s+|della\s+|dei\s+|delle\s+|di\s+)?"
        r"[a-zàèéìíîòóùú\-']+(?:\s+[a-zàèéìíîòóùú\-']+){0,2}",
        ITALY,
        flags=_I,
    ),
)

GERMANY_MATCHERS = (
    _m(
        EntityKind.PHONE,
        r"(?:\+49\s?|0)(?:\(\d{2,5}\)|\d{2,5})[\s\-]?\d{6,10}",
        GERMANY,
        validator=_phone_validator,
    ),
    _m(EntityKind.ZIP_CODE, r"\b(?:0[1-9]|[1-9]\d)\d{3}\b", GERMANY),
    _m(
        EntityKind.STREET_ADDRESS,
        r"\b\d{1,4}[a-z]?\s+(?:[a-züäöß\-']+\s+)*[a-züäöß\-']*?(?:straße|str\.|platz|weg"
        r"|allee|gasse|ring|damm|chaussee|ufer|promenade|avenue|boulevard)(?![a-züäöß])",
        GERMANY,
        flags=_I,
    ),
)

# =============================================================================
# ASIA, MIDDLE EAST, RUSSIA
# =============================================================================

CHINA_MATCHERS = (
    _m(
        EntityKind.PHONE,
        r"(?:\+86\s?|0)?1[3-9]\d[\s\-]?\d{4}[\s\-]?\d{4}",
        CHINA,
        validator=_phone_validator,
    ),
    _m(EntityKind.ZIP_CODE, r"\b[1-9]\d{5}\b", CHINA),
    _m(
        EntityKind.STREET_ADDRESS,
        r"[^\x00-\x7F]+(?:市|省|区|县|镇|村|街道|路|街|巷|号|弄|里|园|庄|苑|大厦|大楼|中心|广场|公园)",
        CHINA,
    ),
)

INDIA_MATCHERS = (
    _m(
        EntityKind.PHONE,
        r"(?:\+91\s?|0)?(?:[6-9]\d{9}|11[\s\-]?\d{4}[\s\-]?\d{4})",
        INDIA,
        validator=_phone_validator,
    ),
    _m(EntityKind.ZIP_CODE, r"\b[1-9]\d{5}\b", INDIA),
    _m(
        EntityKind.STREET_ADDRESS,
        r"\b\d{1,4}[a-z]?\s+(?:[a-z\-']+\s+)*(?:road|rd|street|st|lane|ln|nagar|colony|sector"
        r"|block|phase|plot|house|building|apartment|flat|cross|main|layout|extension|park"
        r"|garden|circle|square|compound|society|residency|enclave|vihar|kunj|puram|gram"
        r"|marg|path)\b",
        INDIA,
        flags=_I,
    ),
)

ARABIC_MATCHERS = (
    _m(
        EntityKind.PHONE,
        r"(?:\+(?:966|971|20|962|965|968|973|974|967)[\s\-]?)?(?:0)?[1-9]\d[\s\-]?\d{3}[\s\-]?\d{4}",
        ARABIC,
        validator=_phone_validator,
    ),
    _m(EntityKind.ZIP_CODE, r"\b\d{5}\b", ARABIC),
    _m(
        EntityKind.STREET_ADDRESS,
        _NON_ASCII_RUN
        + r"(?:شارع|طريق|حي|منطقة|مدينة|قرية|ميدان|كورنيش|جسر|نفق|ساحة|حديقة|مجمع|برج|عمارة"
        r"|بناية|فيلا|شقة|رقم|ص\.ب)\s*(?:\d+)?",
        ARABIC,
        flags=_I,
    ),
)

RUSSIA_MATCHERS = (
    _m(
        EntityKind.PHONE,
        r"(?:\+7|8)[\s\-]?\(?(?:3\d\d|4\d\d|8\d\d|9\d\d)\)?[\s\-]?\d{3}[\s\-]?\d{2}[\s\-]?\d{2}",
        RUSSIA,
        validator=_phone_validator,
    ),
    _m(EntityKind.ZIP_CODE, r"\b[1-6]\d{5}\b", RUSSIA),
    _m(
        EntityKind.STREET_ADDRESS,
        _NON_ASCII_RUN
        + r"(?:улица|ул\.|проспект|пр\.|переулок|пер\.|площадь|пл\.|набережная|наб\.|бульвар"
        r"|б-р|шоссе|ш\.|тракт|дорога|линия|аллея|тупик|проезд|спуск|подъем|мост|км|дом|д\."
        r"|корпус|корп\.|строение|стр\.|квартира|кв\.)\s*(?:\d+[а-я]?)?",
        RUSSIA,
        flags=_I,
    ),
)


BUILTIN_MATCHERS: Tuple[PatternMatcher, ...] = (
    INTERNATIONAL
    + US_MATCHERS
    + UK_MATCHERS
    + FRANCE_MATCHERS
    + SPAIN_MATCHERS
    + ITALY_MATCHERS
    + GERMANY_MATCHERS
    + CHINA_MATCHERS
    + INDIA_MATCHERS
    + ARABIC_MATCHERS
    + RUSSIA_MATCHERS
)
