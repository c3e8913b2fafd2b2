"""Core type definitions for runtime values.

Variables, captured response fragments and resolved request fields are
all expressed as `Value`: scalars, sequences and string-keyed mappings.
"""

from collections.abc import Mapping, Sequence
from datetime import date, datetime, timedelta
from typing import Any

from pydantic import SecretStr

#: Scalars represent fully resolved, atomic values.
type Scalar = date | datetime | timedelta | str | bytes | int | float | bool | SecretStr

#: A value is considered resolved if it contains no placeholders
#: and can be consumed directly by the executor and the evaluator.
type Value = Scalar | Sequence['Value'] | Mapping[str, 'Value'] | None

#: A value in runtime represents any Python object received from
#: external libraries, for example decoded JSON response bodies.
type RuntimeValue = Any

MAPPINGS = (dict, Mapping)
SCALARS = (date, datetime, timedelta, str, bytes, int, float, bool, SecretStr)
SEQUENCES = (list, tuple, set)
