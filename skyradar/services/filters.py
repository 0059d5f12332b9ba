"""Boolean filter expressions selecting which aircraft are live-visible.

Expressions are conjunctions of clauses joined by ``AND``::

    alt_baro > 10000 AND speed > 200 AND type = B38M

A clause is either ``field OP literal`` or a single bare word, which matches
case-insensitively as a substring of callsign, registration, type or hex.
The string is compiled once into an immutable tree and then evaluated per
record per render tick without reparsing.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import operator
import re
from typing import Any, Callable, Union

from skyradar.domain import AircraftRecord

logger = logging.getLogger("skyradar.filters")


class FilterSyntaxError(ValueError):
    """Raised when a filter expression cannot be compiled."""


# name -> (record attribute, numeric?)
FIELDS: dict[str, tuple[str, bool]] = {
    "hex": ("icao_hex", False),
    "icao": ("icao_hex", False),
    "callsign": ("callsign", False),
    "flight": ("callsign", False),
    "registration": ("registration", False),
    "reg": ("registration", False),
    "r": ("registration", False),
    "type": ("type_code", False),
    "t": ("type_code", False),
    "squawk": ("squawk", False),
    "category": ("category", False),
    "alt_baro": ("altitude_baro", True),
    "alt": ("altitude_baro", True),
    "altitude": ("altitude_baro", True),
    "alt_geom": ("altitude_geom", True),
    "speed": ("ground_speed", True),
    "gs": ("ground_speed", True),
    "track": ("track", True),
    "vertical_rate": ("vertical_rate", True),
    "vs": ("vertical_rate", True),
    "baro_rate": ("vertical_rate", True),
    "lat": ("lat", True),
    "lon": ("lon", True),
    "nic": ("nic", True),
    "nac_p": ("nac_p", True),
    "nac": ("nac_p", True),
    "closure_rate": ("closure_rate", True),
    "seen": ("seen_secs", True),
}

_OPS: dict[str, Callable[[Any, Any], bool]] = {
    ">": operator.gt,
    "<": operator.lt,
    ">=": operator.ge,
    "<=": operator.le,
    "=": operator.eq,
    "==": operator.eq,
    "!=": operator.ne,
}

_SEARCH_ATTRS = ("callsign", "registration", "type_code", "icao_hex")

_TOKEN_RE = re.compile(
    r"""\s*(?:
        (?P<op>>=|<=|!=|==|=|>|<)
      | (?P<quoted>"[^"]*"|'[^']*')
      | (?P<word>[^\s<>=!"']+)
    )""",
    re.VERBOSE,
)


@dataclass(frozen=True)
class MatchAll:
    def matches(self, record: AircraftRecord) -> bool:
        return True


@dataclass(frozen=True)
class Comparison:
    field: str
    attr: str
    op: str
    value: Union[float, str]
    numeric: bool

    def matches(self, record: AircraftRecord) -> bool:
        current = getattr(record, self.attr, None)
        if current is None:
            return False
        compare = _OPS[self.op]
        if self.numeric:
            return compare(float(current), self.value)
        return compare(str(current).upper(), self.value)


@dataclass(frozen=True)
class TextSearch:
    needle: str

    def matches(self, record: AircraftRecord) -> bool:
        for attr in _SEARCH_ATTRS:
            value = getattr(record, attr, None)
            if value and self.needle in value.upper():
                return True
        return False


@dataclass(frozen=True)
class Conjunction:
    clauses: tuple[Union[Comparison, TextSearch], ...]

    def matches(self, record: AircraftRecord) -> bool:
        # all() stops at the first failing clause, left to right
        return all(clause.matches(record) for clause in self.clauses)


FilterNode = Union[MatchAll, Comparison, TextSearch, Conjunction]


@dataclass(frozen=True)
class FilterExpression:
    """Compiled filter; `error` is set when compilation fell back to match-all."""

    source: str
    root: FilterNode
    error: str | None = None

    def matches(self, record: AircraftRecord) -> bool:
        return self.root.matches(record)

    @property
    def is_match_all(self) -> bool:
        return isinstance(self.root, MatchAll)


MATCH_ALL = FilterExpression(source="", root=MatchAll())


def _tokenize(text: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    while pos < len(text):
        if text[pos:].strip() == "":
            break
        match = _TOKEN_RE.match(text, pos)
        if match is None or match.end() == pos:
            raise FilterSyntaxError(f"unexpected character {text[pos:].strip()[0]!r} at {pos}")
        kind = match.lastgroup
        value = match.group(kind)
        if kind == "quoted":
            value = value[1:-1]
        tokens.append((kind, value))
        pos = match.end()
    return tokens


def _split_clauses(tokens: list[tuple[str, str]]) -> list[list[tuple[str, str]]]:
    clauses: list[list[tuple[str, str]]] = [[]]
    for kind, value in tokens:
        if kind == "word" and value.upper() == "AND":
            clauses.append([])
        else:
            clauses[-1].append((kind, value))
    for clause in clauses:
        if not clause:
            raise FilterSyntaxError("empty clause around AND")
    return clauses


def _compile_clause(clause: list[tuple[str, str]]) -> Union[Comparison, TextSearch]:
    if len(clause) == 1:
        kind, value = clause[0]
        if kind == "op":
            raise FilterSyntaxError(f"operator {value!r} without operands")
        return TextSearch(needle=value.upper())

    if len(clause) != 3 or clause[0][0] != "word" or clause[1][0] != "op":
        rendered = " ".join(value for _, value in clause)
        raise FilterSyntaxError(f"expected 'field OP value', got {rendered!r}")

    name = clause[0][1].lower()
    op = clause[1][1]
    literal_kind, literal = clause[2]
    if literal_kind == "op":
        raise FilterSyntaxError(f"missing value after {op!r}")
    if name not in FIELDS:
        raise FilterSyntaxError(f"unknown field {name!r}")

    attr, numeric = FIELDS[name]
    if numeric:
        try:
            value: Union[float, str] = float(literal)
        except ValueError:
            raise FilterSyntaxError(
                f"field {name!r} is numeric; {literal!r} is not a number"
            ) from None
    else:
        value = literal.upper()
    return Comparison(field=name, attr=attr, op=op, value=value, numeric=numeric)


def compile_filter(text: str | None) -> FilterExpression:
    """Parse `text` into a filter tree, raising FilterSyntaxError on bad input."""

    source = (text or "").strip()
    if not source:
        return MATCH_ALL

    clauses = [_compile_clause(clause) for clause in _split_clauses(_tokenize(source))]
    root: FilterNode = clauses[0] if len(clauses) == 1 else Conjunction(tuple(clauses))
    return FilterExpression(source=source, root=root)


def load_filter(text: str | None) -> FilterExpression:
    """Compile a configured filter, falling back to match-all on errors.

    A bad expression is reported once here as a warning; it never stops the
    render pipeline.
    """

    try:
        return compile_filter(text)
    except FilterSyntaxError as exc:
        logger.warning("Ignoring invalid filter %r: %s", text, exc)
        return FilterExpression(source=(text or "").strip(), root=MatchAll(), error=str(exc))


__all__ = [
    "Comparison",
    "Conjunction",
    "FIELDS",
    "FilterExpression",
    "FilterSyntaxError",
    "MATCH_ALL",
    "MatchAll",
    "TextSearch",
    "compile_filter",
    "load_filter",
]
