"""Expressions that read typed values out of ``event_params``.

Firebase stores event parameters as a list of ``{key, value}`` entries where
``value`` holds one of ``string_value``, ``int_value``, ``float_value`` or
``double_value``. At most one entry is expected per key; a missing key
yields NULL.
"""

import re
from enum import Enum

KEY_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")


class ValueType(str, Enum):
    INT = "int"
    FLOAT = "float"
    STRING = "string"


def _lookup(key: str, field: str, column: str) -> str:
    if not KEY_PATTERN.match(key):
        raise ValueError(f"Invalid event parameter key: {key!r}")
    return f"list_extract([p['value']['{field}'] FOR p IN {column} IF p['key'] = '{key}'], 1)"


def int_param(key: str, column: str = "event_params") -> str:
    return _lookup(key, "int_value", column)


def string_param(key: str, column: str = "event_params") -> str:
    return _lookup(key, "string_value", column)


def float_param(key: str, column: str = "event_params") -> str:
    # Numeric parameters are often logged as integers; never drop them
    return (
        "COALESCE("
        f"{_lookup(key, 'double_value', column)}, "
        f"{_lookup(key, 'float_value', column)}, "
        f"CAST({_lookup(key, 'int_value', column)} AS DOUBLE))"
    )


def event_param(key: str, value_type: ValueType, column: str = "event_params") -> str:
    if value_type is ValueType.INT:
        return int_param(key, column)
    if value_type is ValueType.FLOAT:
        return float_param(key, column)
    return string_param(key, column)
