"""
Value types shared by engines, selectors and services.

Responsibility:
    Stock classes, SKU identity, physical location codes, and the
    normalisers applied to externally produced rows (marketplace condition
    spellings, language codes, loosely typed booleans).

Architecture position:
    Kernel > Domain -- pure, zero I/O. Imports nothing from models/ or
    services/.

Location format:
    ``<DRAWER><ROW:2 digits>.<BATCH:2 digits>``, e.g. ``D03.07`` means
    drawer D, row 3, batch 7. Drawers are single letters A-J.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from warehouse_kernel.exceptions import InvalidLocationCodeError, ValidationError


class StockClass(str, Enum):
    """Storage policy classification of a card."""

    CORE = "CORE"
    COMMANDER = "COMMANDER"
    REGULAR = "REGULAR"
    CTBULK = "CTBULK"

    @classmethod
    def parse(cls, value: Any) -> "StockClass | None":
        if value is None:
            return None
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return None


@dataclass(frozen=True, slots=True, order=True)
class SkuKey:
    """Identity of a sellable unit: card, finish, condition, language."""

    cardmarket_id: int
    is_foil: bool
    condition: str
    language: str

    def __str__(self) -> str:
        foil = "foil" if self.is_foil else "nonfoil"
        return f"{self.cardmarket_id}|{foil}|{self.condition}|{self.language}"

    def normalized(self) -> "SkuKey":
        return SkuKey(
            cardmarket_id=self.cardmarket_id,
            is_foil=bool(self.is_foil),
            condition=normalize_condition(self.condition),
            language=normalize_language(self.language),
        )


@dataclass(frozen=True, slots=True, order=True)
class RowKey:
    """A physical (drawer, row) pair."""

    drawer: str
    row: int

    def __str__(self) -> str:
        return f"{self.drawer}{self.row:02d}"


_LOCATION_RE = re.compile(r"^([A-J])(\d{2})\.(\d{2})$")


@dataclass(frozen=True, slots=True)
class LocationCode:
    """Parsed ``<DRAWER><ROW>.<BATCH>`` location."""

    drawer: str
    row: int
    batch: int

    @property
    def row_key(self) -> RowKey:
        return RowKey(self.drawer, self.row)

    def __str__(self) -> str:
        return f"{self.drawer}{self.row:02d}.{self.batch:02d}"

    @classmethod
    def parse(cls, value: str | None) -> "LocationCode | None":
        """Parse a stored location; returns None for blank or unparseable values."""
        if not value:
            return None
        match = _LOCATION_RE.match(value.strip().upper())
        if match is None:
            return None
        return cls(match.group(1), int(match.group(2)), int(match.group(3)))

    @classmethod
    def parse_strict(cls, value: str | None) -> "LocationCode":
        code = cls.parse(value)
        if code is None:
            raise InvalidLocationCodeError(str(value))
        return code


# ---------------------------------------------------------------------------
# Normalisers for externally produced rows
# ---------------------------------------------------------------------------

_CONDITION_ALIASES: dict[str, str] = {
    "M": "MT",
    "MT": "MT",
    "MINT": "MT",
    "NM": "NM",
    "NEAR MINT": "NM",
    "NEARMINT": "NM",
    "NEAR_MINT": "NM",
    "EX": "EX",
    "EXCELLENT": "EX",
    "SLIGHTLY PLAYED": "EX",
    "SP": "EX",
    "GD": "GD",
    "GOOD": "GD",
    "MODERATELY PLAYED": "GD",
    "MP": "GD",
    "LP": "LP",
    "LIGHT PLAYED": "LP",
    "LIGHTLY PLAYED": "LP",
    "PLAYED": "LP",
    "PL": "PL",
    "HEAVILY PLAYED": "PL",
    "PO": "PO",
    "P": "PO",
    "POOR": "PO",
}

_LANGUAGE_ALIASES: dict[str, str] = {
    "EN": "EN",
    "ENG": "EN",
    "ENGLISH": "EN",
    "JA": "JA",
    "JP": "JA",
    "JPN": "JA",
    "JAPANESE": "JA",
    "DE": "DE",
    "GER": "DE",
    "GERMAN": "DE",
}

_TRUE_STRINGS = frozenset({"t", "true", "1", "yes", "y", "foil"})
_FALSE_STRINGS = frozenset({"f", "false", "0", "no", "n", "", "nonfoil", "normal"})

DEFAULT_LANGUAGE = "EN"


def normalize_condition(value: Any) -> str:
    """Map marketplace condition spellings to the short grade codes.

    Unknown values are upper-cased and passed through; blank stays blank.
    """
    if value is None:
        return ""
    upper = str(value).strip().upper()
    return _CONDITION_ALIASES.get(upper, upper)


def normalize_language(value: Any) -> str:
    if value is None:
        return DEFAULT_LANGUAGE
    upper = str(value).strip().upper()
    if not upper:
        return DEFAULT_LANGUAGE
    return _LANGUAGE_ALIASES.get(upper, upper)


def coerce_bool(value: Any, field: str = "is_foil") -> bool:
    """Coerce the loose boolean encodings found in sales feeds."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, int):
        if value in (0, 1):
            return bool(value)
        raise ValidationError(field, value, "expected a boolean")
    lowered = str(value).strip().lower()
    if lowered in _TRUE_STRINGS:
        return True
    if lowered in _FALSE_STRINGS:
        return False
    raise ValidationError(field, value, "expected a boolean")


def coerce_positive_int(value: Any, field: str) -> int:
    """Coerce to int > 0, rejecting fractional and non-numeric values."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(field, value, "expected a positive integer")
    try:
        as_int = int(str(value).strip())
    except ValueError:
        raise ValidationError(field, value, "expected a positive integer") from None
    if as_int <= 0:
        raise ValidationError(field, value, "expected a positive integer")
    return as_int
