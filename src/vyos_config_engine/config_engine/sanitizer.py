"""Quoting of user-supplied values for inclusion in CLI statements."""
import re

_NEEDS_QUOTES = re.compile(r"""[\s'"\\]""")


def _escape(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def quote(value: str) -> str:
    """Quote a value only when it contains whitespace or a quote character.

    Examples:
        quote("simple")    -> simple
        quote("has space") -> 'has space'
        quote("it's")      -> 'it\\'s'
    """
    value = str(value)
    if _NEEDS_QUOTES.search(value):
        return _escape(value)
    return value


def quote_literal(value: str) -> str:
    """Always single-quote a value leaf, the way the device reports it."""
    return _escape(str(value))


# Leaves whose value must never reach a log
_SECRET = re.compile(
    r"""\b(plaintext-password|encrypted-password|pre-shared-secret)([ \t]+)('(?:[^'\\]|\\.)*'|\S+)"""
)

MASK = "'****'"


def mask_secrets(text: str) -> str:
    """Replace password and pre-shared secret values in statements or transcripts.

    Examples:
        mask_secrets("set system login user ops authentication plaintext-password 'pw'")
            -> "set system login user ops authentication plaintext-password '****'"
    """
    return _SECRET.sub(lambda m: f"{m.group(1)}{m.group(2)}{MASK}", text)
