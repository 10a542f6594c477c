"""Typed JSON payloads stored alongside entities.

Offer terms, normalized intake snapshots and checklist checks are flat
mappings from string keys to a closed set of scalar kinds.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Union

from tradeup_engine.errors import InputValidationError

JsonScalar = Union[str, int, float, bool]
ScalarMapping = dict[str, JsonScalar]


def validate_scalar_mapping(value: object, *, field: str) -> ScalarMapping:
    """Check that ``value`` is a flat mapping of strings to scalars.

    Args:
        value: Candidate payload.
        field: Name used in the error message.

    Returns:
        A plain dict copy of the payload.

    Raises:
        InputValidationError: On non-mapping input, non-string keys, nested
            values or non-finite floats.
    """
    if not isinstance(value, Mapping):
        raise InputValidationError(f"{field} must be an object")

    result: ScalarMapping = {}
    for key, item in value.items():
        if not isinstance(key, str) or not key:
            raise InputValidationError(f"{field} keys must be non-empty strings")
        if not isinstance(item, (str, int, float, bool)):
            raise InputValidationError(f"{field}.{key} must be a string, number or boolean")
        if isinstance(item, float) and not math.isfinite(item):
            raise InputValidationError(f"{field}.{key} must be finite")
        result[key] = item
    return result
