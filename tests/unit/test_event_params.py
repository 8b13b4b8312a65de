import pytest

from game_analytics.services.event_params import (
    ValueType,
    event_param,
    float_param,
    int_param,
    string_param,
)


def test_int_and_string_params_read_one_field():
    assert int_param("level") == "list_extract([p['value']['int_value'] FOR p IN event_params IF p['key'] = 'level'], 1)"
    assert "p['value']['string_value']" in string_param("unit_names")


def test_float_param_falls_back_to_int():
    expression = float_param("duration_seconds")
    assert expression.startswith("COALESCE(")
    assert expression.index("double_value") < expression.index("float_value") < expression.index("int_value")
    assert "CAST(" in expression and "AS DOUBLE)" in expression


def test_event_param_dispatches_on_type():
    assert event_param("level", ValueType.INT) == int_param("level")
    assert event_param("duration_seconds", ValueType.FLOAT) == float_param("duration_seconds")
    assert event_param("Skill", ValueType.STRING) == string_param("Skill")


def test_custom_column():
    assert "FOR p IN e.event_params" in string_param("ad_format", column="e.event_params")


@pytest.mark.parametrize("key", ["", "level'; --", "two words", "a.b"])
def test_invalid_keys_are_rejected(key):
    with pytest.raises(ValueError):
        int_param(key)
