"""
Property-based tests for domain validation module.

Covers canonicalization (case, IDNA, trailing dot) and rejection of
malformed monitored domains.
"""

import string

import idna
from hypothesis import given, settings, assume
from hypothesis import strategies as st

from dns_monitor.domain_validator import DomainValidator
from dns_monitor.enums import DomainValidationErrorCode


TLDS = ["com", "org", "fi", "io", "finance", "money"]


def valid_ascii_label() -> st.SearchStrategy[str]:
    """Generate valid ASCII domain labels (no leading/trailing hyphens)."""
    alphanumeric = st.sampled_from(string.ascii_lowercase + string.digits)

    return st.one_of(
        alphanumeric,
        st.builds(
            lambda first, middle, last: first + middle + last,
            alphanumeric,
            st.text(
                alphabet=string.ascii_lowercase + string.digits + "-",
                min_size=0,
                max_size=10,
            ),
            alphanumeric,
        ),
    ).filter(lambda s: len(s) <= 63 and "--" not in s[:4])  # no punycode prefix


def valid_ascii_domain() -> st.SearchStrategy[str]:
    return st.builds(
        lambda labels, tld: ".".join(labels + [tld]),
        st.lists(valid_ascii_label(), min_size=1, max_size=3),
        st.sampled_from(TLDS),
    )


def valid_idn_label() -> st.SearchStrategy[str]:
    """Generate internationalized labels containing at least one non-ASCII char."""
    international_chars = "äöüéèêëàâáãåæçñøœ"
    valid_chars = string.ascii_lowercase + string.digits + international_chars

    return st.builds(
        lambda first, middle, last: first + middle + last,
        st.sampled_from(international_chars),
        st.text(alphabet=valid_chars, min_size=0, max_size=8),
        st.sampled_from(valid_chars),
    )


def valid_idn_domain() -> st.SearchStrategy[str]:
    return st.builds(
        lambda label, tld: f"{label}.{tld}",
        valid_idn_label(),
        st.sampled_from(TLDS),
    )


class TestDomainNormalizationProperty:
    """Canonical form is lowercase, ASCII and stable."""

    @given(domain=valid_ascii_domain())
    @settings(max_examples=100)
    def test_ascii_domain_only_lowercased(self, domain: str) -> None:
        validator = DomainValidator()

        for variant in (domain, domain.upper(), domain.swapcase()):
            result = validator.validate(variant)
            assert result.valid, result.error
            assert result.canonical_domain == domain.lower()

    @given(domain=valid_idn_domain())
    @settings(max_examples=100)
    def test_idn_produces_valid_idna_encoding(self, domain: str) -> None:
        validator = DomainValidator()

        result = validator.validate(domain)

        assert result.valid, result.error
        canonical = result.canonical_domain
        assert canonical.isascii()
        assert canonical.split(".")[0].startswith("xn--")
        assert idna.decode(canonical) == domain

    @given(domain=st.one_of(valid_ascii_domain(), valid_idn_domain()))
    @settings(max_examples=100)
    def test_normalization_is_idempotent(self, domain: str) -> None:
        validator = DomainValidator()

        once = validator.validate(domain).canonical_domain
        twice = validator.validate(once).canonical_domain

        assert once == twice

    @given(
        domain=valid_ascii_domain(),
        padding=st.sampled_from(["", " ", "\t", "  "]),
        trailing_dot=st.booleans(),
    )
    @settings(max_examples=100)
    def test_surrounding_whitespace_and_root_dot_ignored(
        self, domain: str, padding: str, trailing_dot: bool
    ) -> None:
        raw = padding + domain + ("." if trailing_dot else "") + padding

        result = DomainValidator().validate(raw)

        assert result.valid
        assert result.canonical_domain == domain


class TestRejectionProperty:
    """Malformed domains are rejected with a specific code."""

    FORBIDDEN_CHARS = [
        '\x00', '\x01', '\x1f', '\x7f',
        ' ', '\t',
        '!', '@', '#', '$', '%', '^', '&', '*', '(', ')', '+', '=',
        '[', ']', '{', '}', '|', '\\', ':', ';', '"', "'", '<', '>',
        ',', '?', '/', '`', '~',
    ]

    @given(
        base_label=st.text(alphabet=string.ascii_lowercase + string.digits, min_size=1, max_size=10),
        forbidden_char=st.sampled_from(FORBIDDEN_CHARS),
        tld=st.sampled_from(TLDS),
    )
    @settings(max_examples=100)
    def test_forbidden_chars_in_label_cause_rejection(
        self, base_label: str, forbidden_char: str, tld: str
    ) -> None:
        domain = f"{base_label}{forbidden_char}x.{tld}"

        result = DomainValidator().validate(domain)

        assert not result.valid
        assert result.canonical_domain is None
        assert result.error.code == DomainValidationErrorCode.FORBIDDEN_CHARS
        assert forbidden_char in result.error.details["forbidden_chars"]

    @given(label=valid_ascii_label())
    @settings(max_examples=50)
    def test_single_label_rejected(self, label: str) -> None:
        result = DomainValidator().validate(label)

        assert not result.valid
        assert result.error.code == DomainValidationErrorCode.MISSING_DOT

    @given(label=valid_ascii_label(), tld=st.sampled_from(TLDS))
    @settings(max_examples=50)
    def test_empty_inner_label_rejected(self, label: str, tld: str) -> None:
        result = DomainValidator().validate(f"{label}..{tld}")

        assert not result.valid
        assert result.error.code == DomainValidationErrorCode.MISSING_DOT

    @given(raw=st.sampled_from(["", " ", "\t\n", "   "]))
    def test_blank_input_rejected(self, raw: str) -> None:
        result = DomainValidator().validate(raw)

        assert not result.valid
        assert result.error.code == DomainValidationErrorCode.EMPTY_INPUT

    def test_invalid_idna_rejected(self) -> None:
        result = DomainValidator().validate("ä-.com")

        assert not result.valid
        assert result.error.code == DomainValidationErrorCode.IDNA_ERROR

    def test_known_defi_domains_accepted(self) -> None:
        validator = DomainValidator()
        for domain in ["app.uniswap.org", "aave.com", "1inch.io", "summer.fi"]:
            assert validator.validate(domain).canonical_domain == domain
