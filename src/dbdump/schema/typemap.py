"""Map MySQL/MariaDB column type descriptors to semantic types."""

from dataclasses import dataclass, field
from typing import Optional

from dbdump.types import SemanticType

__all__ = ["TypeDescriptor", "resolve", "SEMANTIC_TYPES"]

_MODIFIERS = {"unsigned", "signed", "zerofill"}

SEMANTIC_TYPES: dict[str, SemanticType] = {
    "tinyint": SemanticType.INTEGER,
    "smallint": SemanticType.INTEGER,
    "mediumint": SemanticType.INTEGER,
    "int": SemanticType.INTEGER,
    "integer": SemanticType.INTEGER,
    "bigint": SemanticType.INTEGER,
    "serial": SemanticType.INTEGER,
    "year": SemanticType.INTEGER,
    "bool": SemanticType.BOOLEAN,
    "boolean": SemanticType.BOOLEAN,
    "float": SemanticType.FLOAT,
    "double": SemanticType.FLOAT,
    "double precision": SemanticType.FLOAT,
    "real": SemanticType.FLOAT,
    "decimal": SemanticType.DECIMAL,
    "numeric": SemanticType.DECIMAL,
    "dec": SemanticType.DECIMAL,
    "fixed": SemanticType.DECIMAL,
    "char": SemanticType.STRING,
    "varchar": SemanticType.STRING,
    "nchar": SemanticType.STRING,
    "nvarchar": SemanticType.STRING,
    "national char": SemanticType.STRING,
    "national varchar": SemanticType.STRING,
    "character": SemanticType.STRING,
    "character varying": SemanticType.STRING,
    "tinytext": SemanticType.STRING,
    "text": SemanticType.STRING,
    "mediumtext": SemanticType.STRING,
    "longtext": SemanticType.STRING,
    "enum": SemanticType.STRING,
    "set": SemanticType.STRING,
    "uuid": SemanticType.STRING,
    "inet4": SemanticType.STRING,
    "inet6": SemanticType.STRING,
    "binary": SemanticType.BINARY,
    "varbinary": SemanticType.BINARY,
    "tinyblob": SemanticType.BINARY,
    "blob": SemanticType.BINARY,
    "mediumblob": SemanticType.BINARY,
    "longblob": SemanticType.BINARY,
    "bit": SemanticType.BINARY,
    "datetime": SemanticType.DATETIME,
    "timestamp": SemanticType.DATETIME,
    "date": SemanticType.DATE,
    "time": SemanticType.TIME,
    "json": SemanticType.JSON,
}


@dataclass(frozen=True)
class TypeDescriptor:
    """A column type as reported by the catalog.

    column_type is kept verbatim for DDL; the parsed parts drive type
    resolution and literal rendering.
    """

    column_type: str
    name: str
    params: tuple[str, ...] = ()
    unsigned: bool = False
    zerofill: bool = False
    charset: Optional[str] = field(default=None, compare=False)

    @classmethod
    def parse(cls, column_type: str, charset: Optional[str] = None) -> "TypeDescriptor":
        """Parse a COLUMN_TYPE string such as ``int(10) unsigned`` or ``enum('a','b')``."""
        raw = column_type.strip()
        open_idx = raw.find("(")
        if open_idx >= 0:
            close_idx = raw.rfind(")")
            if close_idx < open_idx:
                close_idx = len(raw)
            head = raw[:open_idx]
            params = _split_params(raw[open_idx + 1 : close_idx])
            tail = raw[close_idx + 1 :].lower().split()
            words = head.lower().split()
        else:
            params = ()
            words = raw.lower().split()
            tail = []
            while len(words) > 1 and words[-1] in _MODIFIERS:
                tail.insert(0, words.pop())

        return cls(
            column_type=raw,
            name=" ".join(words),
            params=params,
            unsigned="unsigned" in tail,
            zerofill="zerofill" in tail,
            charset=charset,
        )

    def _int_param(self, index: int) -> Optional[int]:
        if len(self.params) <= index:
            return None
        try:
            return int(self.params[index])
        except ValueError:
            return None

    @property
    def length(self) -> Optional[int]:
        """Declared length / display width (first numeric parameter)."""
        return self._int_param(0)

    @property
    def precision(self) -> Optional[int]:
        return self._int_param(0)

    @property
    def scale(self) -> Optional[int]:
        return self._int_param(1)

    def __str__(self) -> str:
        return self.column_type


def _split_params(text: str) -> tuple[str, ...]:
    """Split a parameter list on commas outside quoted strings."""
    parts: list[str] = []
    current: list[str] = []
    quote: Optional[str] = None
    i = 0
    while i < len(text):
        ch = text[i]
        if quote:
            current.append(ch)
            if ch == "\\" and i + 1 < len(text):
                current.append(text[i + 1])
                i += 1
            elif ch == quote:
                if i + 1 < len(text) and text[i + 1] == quote:
                    current.append(text[i + 1])
                    i += 1
                else:
                    quote = None
        elif ch in ("'", '"'):
            quote = ch
            current.append(ch)
        elif ch == ",":
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        i += 1
    if current or parts:
        parts.append("".join(current).strip())
    return tuple(parts)


def resolve(descriptor: TypeDescriptor | str) -> SemanticType:
    """Resolve a type descriptor to its SemanticType.

    Names are matched case-insensitively. Unsigned/zerofill modifiers do not
    change the result. Unrecognised types resolve to UNKNOWN; deciding
    whether that is fatal is left to the caller.
    """
    if isinstance(descriptor, str):
        descriptor = TypeDescriptor.parse(descriptor)

    if descriptor.name == "tinyint" and descriptor.length == 1:
        return SemanticType.BOOLEAN

    return SEMANTIC_TYPES.get(descriptor.name, SemanticType.UNKNOWN)
