import logging

import pytest

from skyradar.domain import AircraftRecord
from skyradar.services.filters import (
    Comparison,
    Conjunction,
    FilterSyntaxError,
    TextSearch,
    compile_filter,
    load_filter,
)


def _record(**fields) -> AircraftRecord:
    fields.setdefault("icao_hex", "a1b2c3")
    return AircraftRecord(first_seen_at=0.0, last_seen_at=0.0, **fields)


def test_altitude_and_speed_conjunction():
    expression = compile_filter("alt_baro > 10000 AND speed > 200")

    assert expression.matches(_record(altitude_baro=35000, ground_speed=500.0))
    assert not expression.matches(_record(altitude_baro=5000, ground_speed=500.0))


def test_absent_field_rejects_regardless_of_other_clauses():
    expression = compile_filter("alt_baro > 10000 AND speed > 200")

    assert not expression.matches(_record(ground_speed=500.0))
    assert not compile_filter("alt_baro != 10000").matches(_record())


def test_compiles_to_tree_once():
    expression = compile_filter("alt > 1000 and type = b738")

    assert isinstance(expression.root, Conjunction)
    first, second = expression.root.clauses
    assert first == Comparison(field="alt", attr="altitude_baro", op=">", value=1000.0, numeric=True)
    assert second == Comparison(field="type", attr="type_code", op="=", value="B738", numeric=False)


def test_text_comparison_is_case_insensitive():
    expression = compile_filter("callsign = ual123")

    assert expression.matches(_record(callsign="UAL123"))
    assert not expression.matches(_record(callsign="DAL1"))


def test_quoted_literals_and_operators_without_spaces():
    expression = compile_filter("squawk='7700' AND alt_baro<=1000")

    assert expression.matches(_record(squawk="7700", altitude_baro=1000))
    assert not expression.matches(_record(squawk="7700", altitude_baro=1001))


def test_bare_word_searches_identity_fields():
    expression = compile_filter("n12")

    assert isinstance(expression.root, TextSearch)
    assert expression.matches(_record(registration="N123AB"))
    assert expression.matches(_record(callsign="XN12"))
    assert not expression.matches(_record(callsign="UAL1", registration="G-ABCD"))


def test_empty_expression_matches_everything():
    expression = compile_filter("   ")

    assert expression.is_match_all
    assert expression.matches(_record())


def test_short_circuits_left_to_right():
    class Exploding:
        def matches(self, record):
            raise AssertionError("evaluated past a failing clause")

    expression = Conjunction((compile_filter("alt > 10000").root, Exploding()))

    assert expression.matches(_record(altitude_baro=100)) is False


@pytest.mark.parametrize(
    "text",
    [
        "alt_baro >",
        "> 10",
        "alt_baro > 10000 AND",
        "AND speed > 1",
        "bogus = 1",
        "speed > fast",
        "alt_baro > 10 speed",
        '"unterminated',
        "speed ! 3",
    ],
)
def test_compile_errors(text):
    with pytest.raises(FilterSyntaxError):
        compile_filter(text)


def test_load_filter_falls_back_to_match_all(caplog):
    with caplog.at_level(logging.WARNING, logger="skyradar.filters"):
        expression = load_filter("speed > fast")

    assert expression.is_match_all
    assert expression.error is not None
    assert "numeric" in expression.error
    assert expression.matches(_record())
    assert "Ignoring invalid filter" in caplog.text


def test_load_filter_valid_has_no_error():
    expression = load_filter("gs >= 250")

    assert expression.error is None
    assert expression.matches(_record(ground_speed=250.0))
