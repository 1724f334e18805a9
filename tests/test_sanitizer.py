"""Tests for value quoting."""
import pytest

from vyos_config_engine.config_engine.parser import tokenize
from vyos_config_engine.config_engine.sanitizer import mask_secrets, quote, quote_literal


class TestQuote:
    """Tests for quote()."""

    def test_plain_value_untouched(self):
        """Values without whitespace or quotes pass through."""
        assert quote("eth0") == "eth0"
        assert quote("192.168.1.0/24") == "192.168.1.0/24"

    def test_whitespace_quoted(self):
        """Whitespace forces single quotes."""
        assert quote("LAN Interface") == "'LAN Interface'"
        assert quote("tab\there") == "'tab\there'"

    def test_single_quote_escaped(self):
        """Embedded single quotes are backslash-escaped."""
        assert quote("it's") == "'it\\'s'"

    def test_double_quote_quoted(self):
        """Double quotes also trigger quoting."""
        assert quote('say "hi"') == "'say \"hi\"'"

    def test_backslash_escaped(self):
        """A backslash is escaped so it survives the round trip."""
        assert quote("a\\b") == "'a\\\\b'"

    def test_double_quote_without_whitespace(self):
        """A lone double quote would otherwise open a verbatim span."""
        assert quote('a"b') == "'a\"b'"

    def test_non_string_coerced(self):
        """Numbers are rendered as text."""
        assert quote(1500) == "1500"

    def test_empty_string(self):
        """Empty values stay empty."""
        assert quote("") == ""


class TestQuoteLiteral:
    """Tests for quote_literal()."""

    def test_always_quoted(self):
        """Value leaves are quoted even without special characters."""
        assert quote_literal("192.168.1.1/24") == "'192.168.1.1/24'"
        assert quote_literal(9000) == "'9000'"

    def test_empty_value(self):
        """Empty values become an explicit empty literal."""
        assert quote_literal("") == "''"

    @pytest.mark.parametrize("value", [
        "LAN Interface",
        "it's",
        'mixed \'single\' and "double"',
        "trailing backslash\\",
        "",
    ])
    def test_tokenizer_recovers_value(self, value):
        """Tokenizing a quoted value yields the original text."""
        assert tokenize(f"set system host-name {quote_literal(value)}")[-1] == value


class TestMaskSecrets:
    """Tests for mask_secrets()."""

    @pytest.mark.parametrize("statement, masked", [
        (
            "set system login user ops authentication plaintext-password 'hunter2'",
            "set system login user ops authentication plaintext-password '****'",
        ),
        (
            "set system login user ops authentication encrypted-password $6$salt$hash",
            "set system login user ops authentication encrypted-password '****'",
        ),
        (
            "set vpn ipsec site-to-site peer branch authentication pre-shared-secret 'it\\'s secret'",
            "set vpn ipsec site-to-site peer branch authentication pre-shared-secret '****'",
        ),
    ])
    def test_masked(self, statement, masked):
        assert mask_secrets(statement) == masked

    def test_other_values_untouched(self):
        statement = "set vpn ipsec site-to-site peer branch authentication mode 'pre-shared-secret'"
        assert mask_secrets(statement) == statement

    def test_multiline_transcript(self):
        transcript = (
            "set system login user ops authentication plaintext-password 'pw1'\r\n"
            "vyos@router# set system host-name 'edge-1'\r\n"
        )
        masked = mask_secrets(transcript)
        assert "pw1" not in masked
        assert "set system host-name 'edge-1'" in masked
