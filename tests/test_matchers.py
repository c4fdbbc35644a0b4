"""
Tests for pattern matchers, the built-in pattern tables and MatcherRegistry.
"""

import re

import pytest

from piiscan.core.matchers import (
    BUILTIN_MATCHERS,
    MatcherRegistry,
    PatternMatcher,
    build_default_registry,
    classify_card_network,
    compile_matcher,
    is_card_like_phone,
)
from piiscan.core.matchers.patterns import LOCALES, iban_country
from piiscan.core.types import EntityKind
from piiscan.exceptions import (
    ConfigurationError,
    FilterConfigurationError,
    PatternConfigurationError,
)


@pytest.fixture(scope="module")
def registry():
    return build_default_registry()


def values(registry, name, text):
    return [text[s:e] for s, e in registry.get(name).find_all(text)]


# =============================================================================
# PATTERN MATCHER
# =============================================================================

class TestPatternMatcher:
    """Tests for PatternMatcher and compile_matcher()."""

    def test_compile_invalid_regex(self):
        """Bad patterns fail at construction with the matcher name attached."""
        with pytest.raises(PatternConfigurationError) as exc_info:
            compile_matcher("broken", r"(unclosed", EntityKind.EMAIL)
        assert exc_info.value.matcher_name == "broken"
        assert exc_info.value.details["pattern"] == "(unclosed"

    def test_group_out_of_range(self):
        """Reading a group the pattern does not have is a configuration error."""
        with pytest.raises(PatternConfigurationError, match="groups"):
            compile_matcher("grp", r"\d+", EntityKind.ZIP_CODE, group=1)

    def test_kind_must_be_enum(self):
        """Plain strings are not accepted as kinds."""
        with pytest.raises(PatternConfigurationError):
            PatternMatcher(name="x", kind="email", locale=None, pattern=re.compile("x"))

    def test_missing_name(self):
        """A matcher needs a name."""
        with pytest.raises(PatternConfigurationError):
            compile_matcher("", r"x", EntityKind.EMAIL)

    def test_find_all_spans(self):
        """Spans are non-overlapping and leftmost-first."""
        matcher = compile_matcher("digits", r"\d{3}", EntityKind.ZIP_CODE)
        assert matcher.find_all("a 12345 b 678") == [(2, 5), (10, 13)]

    def test_validator_rejects(self):
        """Validator False drops the match."""
        matcher = compile_matcher(
            "even", r"\d+", EntityKind.ZIP_CODE, validator=lambda v: int(v) % 2 == 0
        )
        text = "11 22 33 44"
        assert [text[s:e] for s, e in matcher.find_all(text)] == ["22", "44"]

    def test_attributes_immutable(self):
        """Static attributes cannot be mutated through the matcher."""
        matcher = compile_matcher("m", r"x", EntityKind.EMAIL, attributes={"a": "1"})
        with pytest.raises(TypeError):
            matcher.attributes["a"] = "2"

    def test_tag_merges_classifier(self):
        """tag() combines static attributes with classifier output."""
        matcher = compile_matcher(
            "m", r"\w+", EntityKind.IBAN, attributes={"source": "test"}, classifier=iban_country
        )
        assert matcher.tag("de89") == {"source": "test", "country": "DE"}


# =============================================================================
# CLASSIFIERS & FILTERS
# =============================================================================

class TestClassifiers:
    """Tests for card network classification and the phone false-positive filter."""

    @pytest.mark.parametrize("value,network", [
        ("4532015112830366", "visa"),
        ("4532 0151 1283 0366", "visa"),
        ("5425-2334-3010-9903", "mastercard"),
        ("378282246310005", "generic"),
        ("6011000990139424", "generic"),
    ])
    def test_card_network(self, value, network):
        """Visa and Mastercard are recognised, others are generic."""
        assert classify_card_network(value) == {"network": network}

    @pytest.mark.parametrize("value", [
        "4111-1111",
        "1234 5678",
        "555-555-5555",
        "2345 2345",
        "4532 0151 1283 0366",
    ])
    def test_card_like_phone(self, value):
        """Card fragments and filler digits are not phones."""
        assert is_card_like_phone(value) is True

    @pytest.mark.parametrize("value", ["415-555-0188", "+49 30 12345678", "13812345678"])
    def test_real_phone(self, value):
        """Ordinary phone numbers pass the filter."""
        assert is_card_like_phone(value) is False


# =============================================================================
# BUILT-IN PATTERNS
# =============================================================================

class TestBuiltinTable:
    """Tests for the shape of the built-in table."""

    def test_matcher_count(self):
        """Every built-in matcher is registered."""
        assert len(BUILTIN_MATCHERS) == 34

    def test_names_unique(self):
        """Matcher names are unique."""
        names = [m.name for m in BUILTIN_MATCHERS]
        assert len(names) == len(set(names))

    def test_locale_matchers_tag_country(self):
        """Locale matchers carry their locale as country."""
        for matcher in BUILTIN_MATCHERS:
            if matcher.locale is not None:
                assert matcher.attributes["country"] == matcher.locale

    def test_all_locales_present(self):
        """Every locale has at least one matcher."""
        assert set(build_default_registry().locales) == set(LOCALES)


class TestInternationalPatterns:
    """Tests for locale-independent patterns."""

    def test_email(self, registry):
        """Emails match case-insensitively without trailing punctuation."""
        assert values(registry, "email", "Write to Jane.Doe@Example.COM. Thanks") == ["Jane.Doe@Example.COM"]

    def test_credit_card_forms(self, registry):
        """Grouped and ungrouped card numbers match."""
        text = "Cards 4532 0151 1283 0366 and 5425-2334-3010-9903 and 378282246310005."
        assert values(registry, "credit_card", text) == [
            "4532 0151 1283 0366",
            "5425-2334-3010-9903",
            "378282246310005",
        ]

    def test_ipv4(self, registry):
        """Valid dotted quads match, out-of-range octets do not."""
        text = "Hosts 192.168.1.20 and 256.1.1.1 and 8.8.8.8"
        assert values(registry, "ip_address", text) == ["192.168.1.20", "8.8.8.8"]
        assert registry.get("ip_address").tag("8.8.8.8") == {"version": "ipv4"}

    @pytest.mark.parametrize("address", ["2001:db8::1", "fe80::1%eth0", "::1",
                                         "2001:0db8:85a3:0000:0000:8a2e:0370:7334"])
    def test_ipv6(self, registry, address):
        """Full, compressed and zoned IPv6 addresses match whole."""
        assert values(registry, "ip_address.v6", f"Addr {address} up") == [address]
        assert registry.get("ip_address.v6").tag(address) == {"version": "ipv6"}

    def test_ipv6_ignores_times(self, registry):
        """Clock times are not IPv6 addresses."""
        assert values(registry, "ip_address.v6", "Meet at 10:30 or 14:45:00") == []

    def test_btc(self, registry):
        """Legacy bitcoin addresses match."""
        text = "Send to 1A1zP1eP5QGefi2DMPTfTL5SLmv7DivfNa now"
        assert values(registry, "btc_address", text) == ["1A1zP1eP5QGefi2DMPTfTL5SLmv7DivfNa"]

    def test_iban(self, registry):
        """IBANs match and are tagged with their country."""
        text = "Pay DE89370400440532013000 or GB82WEST12345698765432."
        assert values(registry, "iban", text) == ["DE89370400440532013000", "GB82WEST12345698765432"]
        assert registry.get("iban").tag("GB82WEST12345698765432") == {"country": "GB"}


class TestUSPatterns:
    """Tests for US patterns."""

    def test_phone(self, registry):
        """Dashed and dotted numbers match."""
        text = "Call 415-555-0188 or 212.555.0143 today"
        assert values(registry, "phone.US", text) == ["415-555-0188", "212.555.0143"]

    def test_phone_rejects_card_fragments(self, registry):
        """Phone-shaped test card prefixes are filtered out."""
        assert values(registry, "phone.US", "Ref 555-555-5555") == []

    def test_ssn(self, registry):
        """SSNs in dashed form match."""
        assert values(registry, "ssn.US", "SSN 123-45-6789.") == ["123-45-6789"]

    def test_zip(self, registry):
        """ZIP and ZIP+4 match."""
        assert values(registry, "zip_code.US", "Boston, MA 02118-1234 and 10001") == ["02118-1234", "10001"]

    def test_street(self, registry):
        """Number, name and street type."""
        text = "Lives at 1600 Pennsylvania Avenue today"
        assert values(registry, "street_address.US", text) == ["1600 Pennsylvania Avenue"]

    def test_po_box(self, registry):
        """P.O. Box variants."""
        text = "Send to P.O. Box 4521 or PO Box 12"
        assert values(registry, "po_box.US", text) == ["P.O. Box 4521", "PO Box 12"]


class TestEuropeanPatterns:
    """Tests for UK, France, Spain, Italy and Germany."""

    def test_uk_postcode(self, registry):
        """Postcode captured without surrounding text."""
        assert values(registry, "zip_code.UK", "London SW1A 1AA, England") == ["SW1A 1AA"]

    def test_uk_street(self, registry):
        """UK street with a UK street type."""
        assert values(registry, "street_address.UK", "See 10 Downing Street now") == ["10 Downing Street"]

    def test_france_street(self, registry):
        """French street with article."""
        text = "Au 12 rue de la Paix, Paris"
        assert values(registry, "street_address.France", text) == ["12 rue de la Paix"]

    def test_france_zip(self, registry):
        """Department range."""
        assert values(registry, "zip_code.France", "75008 Paris") == ["75008"]

    def test_spain_street(self, registry):
        """Spanish street type."""
        text = "En 15 calle de Alcalá, Madrid"
        assert values(registry, "street_address.Spain", text) == ["15 calle de Alcalá"]

    def test_italy_street(self, registry):
        """Italian street type."""
        text = "Al 21 via del Corso, Roma"
        assert values(registry, "street_address.Italy", text) == ["21 via del Corso"]

    def test_germany_phone(self, registry):
        """International German format."""
        assert values(registry, "phone.Germany", "Tel +49 30 12345678") == ["+49 30 12345678"]

    @pytest.mark.parametrize("address", ["12 Berliner Straße", "5 Hauptstraße", "3 Lindenallee"])
    def test_germany_street(self, registry, address):
        """Separate and compound street names."""
        assert values(registry, "street_address.Germany", f"Wohnt {address}, Berlin") == [address]


class TestOtherPatterns:
    """Tests for China, India, Arabic and Russia."""

    def test_china_phone(self, registry):
        """Mobile numbers."""
        assert values(registry, "phone.China", "电话 13812345678") == ["13812345678"]

    def test_china_street(self, registry):
        """Runs of CJK ending in an address suffix."""
        assert values(registry, "street_address.China", "地址北京市海淀区中关村大街27号") == [
            "地址北京市海淀区中关村大街"
        ]

    def test_india_phone(self, registry):
        """+91 mobile numbers."""
        assert values(registry, "phone.India", "Call +91 9876543210") == ["+91 9876543210"]

    def test_india_pin(self, registry):
        """Six-digit PIN codes."""
        assert values(registry, "zip_code.India", "Delhi 110001") == ["110001"]

    def test_arabic_street(self, registry):
        """Arabic street keyword."""
        found = values(registry, "street_address.Arabic", "العنوان شارع الملك فهد")
        assert len(found) == 1
        assert "شارع" in found[0]

    def test_russia_phone(self, registry):
        """Russian numbers with area code in parentheses."""
        assert values(registry, "phone.Russia", "Тел +7 (495) 123-45-67") == ["+7 (495) 123-45-67"]

    def test_russia_zip(self, registry):
        """Six-digit index."""
        assert values(registry, "zip_code.Russia", "Москва 101000") == ["101000"]


# =============================================================================
# REGISTRY
# =============================================================================

class TestMatcherRegistry:
    """Tests for MatcherRegistry."""

    def test_default_size(self, registry):
        """The default registry holds every built-in."""
        assert len(registry) == 34

    def test_duplicate_name(self):
        """Registering a taken name fails."""
        reg = MatcherRegistry()
        reg.register(compile_matcher("m", r"x", EntityKind.EMAIL))
        with pytest.raises(ConfigurationError, match="already registered"):
            reg.register(compile_matcher("m", r"y", EntityKind.EMAIL))

    def test_get_unknown(self, registry):
        """Unknown names raise KeyError."""
        with pytest.raises(KeyError):
            registry.get("nope")

    def test_resolve_everything(self, registry):
        """No filters enables every matcher."""
        assert len(registry.resolve()) == 34

    def test_resolve_kind_and_locale(self, registry):
        """Kind and locale filters intersect."""
        names = [m.name for m in registry.resolve(kinds={EntityKind.PHONE}, locales={"US"})]
        assert names == ["phone.US"]

    def test_international_always_included(self, registry):
        """Locale filters never drop international matchers."""
        names = {m.name for m in registry.resolve(locales={"US"})}
        assert {"email", "credit_card", "ip_address", "ip_address.v6", "btc_address", "iban"} <= names
        assert len(names) == 11

    def test_locale_case_and_alias(self, registry):
        """Locales are case-insensitive and accept short aliases."""
        assert registry.normalize_locale("germany") == "Germany"
        assert registry.normalize_locale("DE") == "Germany"
        assert registry.normalize_locale("uk") == "UK"

    def test_unknown_locale(self, registry):
        """Unknown locales raise FilterConfigurationError."""
        with pytest.raises(FilterConfigurationError) as exc_info:
            registry.resolve(locales={"Atlantis"})
        assert exc_info.value.field == "locales"
        assert exc_info.value.value == "Atlantis"

    def test_kinds_property(self, registry):
        """Every kind is served by at least one matcher."""
        assert registry.kinds == list(EntityKind)
