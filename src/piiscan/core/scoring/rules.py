"""
Deterministic rule-based scorer.

Judges candidates with checksums and structural rules, no network needed:
- Credit Card: Luhn algorithm, well-known test numbers rejected
- IBAN: Mod-97 international bank account check
- Bitcoin: Base58Check (double SHA-256 checksum)
- SSN: Area, group and serial rules
- IP: stdlib ipaddress parsing
- Email / Phone / Postal codes: structure and placeholder values

Checksum-validated judgements carry the highest confidence (0.95) because
they are mathematically verified. Structural judgements sit lower, and
anything that only "looks fine" sits close to the default acceptance
threshold.
"""

import hashlib
import ipaddress
import logging
import re
from typing import Callable, Dict

from ..types import EntityKind
from .base import BaseScorer, ScoreResult

logger = logging.getLogger(__name__)

__all__ = [
    "RuleScorer",
    "validate_luhn",
    "validate_ssn",
    "validate_iban",
    "validate_btc_address",
]

# =============================================================================
# VALIDATORS
# =============================================================================


_DIGITS = frozenset("0123456789")

# Luhn doubling with the carry already folded in: 5 -> 10 -> 1
_LUHN_DOUBLED = (0, 2, 4, 6, 8, 1, 3, 5, 7, 9)

_IBAN_SHAPE = re.compile(r"[A-Z]{2}[0-9]{2}[A-Z0-9]{11,30}")


def _ascii_digits(text: str) -> str:
    return "".join(c for c in text if c in _DIGITS)


def validate_luhn(text: str) -> bool:
    """True when the digits of *text* pass the Luhn check. Separators are ignored."""
    digits = [int(c) for c in _ascii_digits(text)]
    if len(digits) < 2:
        return False
    undoubled = sum(digits[-1::-2])
    doubled = sum(_LUHN_DOUBLED[d] for d in digits[-2::-2])
    return (undoubled + doubled) % 10 == 0


def validate_ssn(text: str) -> bool:
    """
    True for a structurally valid SSN.

    Area 000, 666 and 900-999 were never issued, and neither were group 00
    or serial 0000.
    """
    digits = _ascii_digits(text)
    if len(digits) != 9:
        return False
    area, group, serial = digits[:3], digits[3:5], digits[5:]
    return area not in ("000", "666") and area[0] != "9" and group != "00" and serial != "0000"


def validate_iban(text: str) -> bool:
    """ISO 13616 mod-97 check over the compacted IBAN."""
    compact = "".join(c for c in text if c.isalnum()).upper()
    if not _IBAN_SHAPE.fullmatch(compact):
        return False

    # Country code and check digits move to the end; letters count as 10..35
    remainder = 0
    for c in compact[4:] + compact[:4]:
        remainder = (remainder * (100 if c.isalpha() else 10) + int(c, 36)) % 97
    return remainder == 1


_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_BASE58_INDEX = {c: i for i, c in enumerate(_BASE58_ALPHABET)}


def validate_btc_address(text: str) -> bool:
    """Validate a legacy (P2PKH / P2SH) address with its Base58Check checksum."""
    if not 26 <= len(text) <= 35 or text[0] not in "13":
        return False

    number = 0
    for c in text:
        if c not in _BASE58_INDEX:
            return False
        number = number * 58 + _BASE58_INDEX[c]

    # Leading '1's encode leading zero bytes
    pad = len(text) - len(text.lstrip("1"))
    body = number.to_bytes((number.bit_length() + 7) // 8, "big")
    raw = b"\x00" * pad + body
    if len(raw) != 25:
        return False

    payload, checksum = raw[:-4], raw[-4:]
    return hashlib.sha256(hashlib.sha256(payload).digest()).digest()[:4] == checksum


# =============================================================================
# PLACEHOLDERS
# =============================================================================

# Published test numbers (Visa, Mastercard, Amex, Discover)
_TEST_CARDS = frozenset({
    "4111111111111111", "4012888888881881", "4000000000000002", "4242424242424242",
    "5555555555554444", "5105105105105100", "378282246310005", "6011111111111117",
})

_PLACEHOLDER_SSNS = frozenset({"123456789", "078051120", "219099999"})

_PLACEHOLDER_EMAIL_DOMAINS = frozenset({
    "example.com", "example.org", "example.net", "test.com", "test.org",
    "domain.com", "email.com", "localhost", "invalid",
})

_PLACEHOLDER_ZIPS = frozenset({"00000", "12345", "99999", "11111"})

# 555-0100 through 555-0199 are reserved for fiction
_FICTIONAL_PHONE_RE = re.compile(r"555[\s.-]?01\d{2}$")

_EXAMPLE_WORDS_RE = re.compile(r"\b(?:example|sample|dummy|fake|placeholder|test data)\b", re.IGNORECASE)


def _digits(value: str) -> str:
    return re.sub(r"\D", "", value)


# =============================================================================
# PER-KIND RULES
# =============================================================================


def _score_credit_card(value: str) -> ScoreResult:
    digits = _digits(value)
    if not 13 <= len(digits) <= 19:
        return ScoreResult(False, 0.9, "Card numbers have 13 to 19 digits")
    if digits in _TEST_CARDS:
        return ScoreResult(False, 0.9, "Well-known test card number")
    if len(set(digits)) == 1:
        return ScoreResult(False, 0.9, "Repeated digit sequence")
    if not validate_luhn(digits):
        return ScoreResult(False, 0.85, "Fails Luhn checksum")
    return ScoreResult(True, 0.95, "Passes Luhn checksum")


def _score_iban(value: str) -> ScoreResult:
    if validate_iban(value):
        return ScoreResult(True, 0.95, "Passes mod-97 checksum")
    return ScoreResult(False, 0.9, "Fails mod-97 checksum")


def _score_btc_address(value: str) -> ScoreResult:
    if validate_btc_address(value):
        return ScoreResult(True, 0.95, "Valid Base58Check address")
    return ScoreResult(False, 0.85, "Base58Check checksum mismatch")


def _score_ssn(value: str) -> ScoreResult:
    digits = _digits(value)
    if digits in _PLACEHOLDER_SSNS:
        return ScoreResult(False, 0.9, "Well-known placeholder SSN")
    if not validate_ssn(digits):
        return ScoreResult(False, 0.9, "Invalid area, group or serial number")
    return ScoreResult(True, 0.85, "Valid SSN structure")


def _score_ip_address(value: str) -> ScoreResult:
    try:
        address = ipaddress.ip_address(value.split("%", 1)[0])
    except ValueError:
        return ScoreResult(False, 0.95, "Not a parseable IP address")
    if address.is_unspecified:
        return ScoreResult(False, 0.9, "Unspecified address")
    if address.is_loopback:
        return ScoreResult(False, 0.75, "Loopback address")
    if address.is_private:
        return ScoreResult(True, 0.75, "Private network address")
    return ScoreResult(True, 0.85, "Routable IP address")


def _score_email(value: str) -> ScoreResult:
    local, _, domain = value.rpartition("@")
    domain = domain.lower()
    if not local or "." not in domain or domain.startswith(".") or domain.endswith("."):
        return ScoreResult(False, 0.9, "Malformed email address")
    if domain in _PLACEHOLDER_EMAIL_DOMAINS:
        return ScoreResult(False, 0.85, f"Placeholder domain {domain}")
    return ScoreResult(True, 0.8, "Well-formed email address")


def _score_phone(value: str) -> ScoreResult:
    digits = _digits(value)
    if not 7 <= len(digits) <= 15:
        return ScoreResult(False, 0.85, f"Unusual digit count ({len(digits)})")
    if _FICTIONAL_PHONE_RE.search(value):
        return ScoreResult(False, 0.8, "Fictional 555-01xx number")
    return ScoreResult(True, 0.75, "Plausible phone number")


def _score_zip_code(value: str) -> ScoreResult:
    compact = value.replace(" ", "")
    if compact.isdigit() and compact in _PLACEHOLDER_ZIPS:
        return ScoreResult(False, 0.8, "Placeholder postal code")
    if compact.isdigit() and not 4 <= len(compact) <= 9:
        return ScoreResult(False, 0.75, "Unusual postal code length")
    return ScoreResult(True, 0.7, "Plausible postal code")


def _score_po_box(value: str) -> ScoreResult:
    if not any(c.isdigit() for c in value):
        return ScoreResult(False, 0.8, "No box number")
    return ScoreResult(True, 0.8, "P.O. Box with number")


def _score_street_address(value: str) -> ScoreResult:
    if re.match(r"123\s+main\s+st", value, re.IGNORECASE):
        return ScoreResult(False, 0.75, "Placeholder street address")
    return ScoreResult(True, 0.7, "Plausible street address")


_RULES: Dict[EntityKind, Callable[[str], ScoreResult]] = {
    EntityKind.EMAIL: _score_email,
    EntityKind.PHONE: _score_phone,
    EntityKind.SSN: _score_ssn,
    EntityKind.ZIP_CODE: _score_zip_code,
    EntityKind.PO_BOX: _score_po_box,
    EntityKind.STREET_ADDRESS: _score_street_address,
    EntityKind.CREDIT_CARD: _score_credit_card,
    EntityKind.IP_ADDRESS: _score_ip_address,
    EntityKind.BTC_ADDRESS: _score_btc_address,
    EntityKind.IBAN: _score_iban,
}


class RuleScorer(BaseScorer):
    """
    Local scorer built from checksums and structural rules.

    An accepted candidate whose context reads like example data
    ("sample", "dummy", "placeholder", ...) loses 0.15 confidence, which
    usually drops it below the acceptance threshold.
    """

    provider_id = "rules"
    model_id = "builtin-v1"

    CONTEXT_PENALTY = 0.15

    def score(self, kind: EntityKind, value: str, context: str) -> ScoreResult:
        result = _RULES[EntityKind.from_value(kind)](value.strip())
        if result.accepted and context and _EXAMPLE_WORDS_RE.search(context):
            return ScoreResult(
                accepted=True,
                confidence=max(0.0, result.confidence - self.CONTEXT_PENALTY),
                reasoning=f"{result.reasoning}; context suggests example data",
            )
        return result
