"""MySQL identifier and string-literal quoting."""

import re

_ESCAPES = {
    "\\": "\\\\",
    "'": "\\'",
    '"': '\\"',
    "\x00": "\\0",
    "\b": "\\b",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\x1a": "\\Z",
}

_ESCAPE_TABLE = str.maketrans(_ESCAPES)


def quote_identifier(name: str) -> str:
    """Backquote an identifier, doubling embedded backquotes."""
    return "`" + name.replace("`", "``") + "`"


def qualified_name(schema: str, name: str) -> str:
    return f"{quote_identifier(schema)}.{quote_identifier(name)}"


def escape_string(value: str) -> str:
    """Escape a string for use inside a single-quoted MySQL literal."""
    return value.translate(_ESCAPE_TABLE)


def quote_string(value: str) -> str:
    return f"'{escape_string(value)}'"


NUMERIC_LITERAL = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


def is_numeric_literal(text: str) -> bool:
    return NUMERIC_LITERAL.fullmatch(text) is not None
