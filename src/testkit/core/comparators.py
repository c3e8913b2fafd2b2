"""Comparison functions used by assertions.

Each comparator receives the actual value selected from the response,
the expected value declared in the document and the assertion options
(`partial_match`, `ignore_case`, `multiline`). Comparators either return
a boolean or raise `AssertionError` on a type or value mismatch. Both,
as well as a `TypeError` from values that can not be compared, count
as a failed assertion.

Equality supports strict and partial semantics for scalars, sequences
and mappings.
"""

# ruff: noqa: S101

from collections.abc import Hashable
from contextlib import suppress
from re import IGNORECASE, MULTILINE, UNICODE
from re import error as RegexError  # noqa: N812
from re import search
from typing import TYPE_CHECKING

from pydantic import SecretStr

from .lookups import MISSING
from .resolver import stringify

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

if TYPE_CHECKING:
    from testkit.values import RuntimeValue

    type Comparator = Callable[[RuntimeValue, RuntimeValue, Mapping[str, RuntimeValue]], bool]

MAPPINGS = (dict,)
SEQUENCES = (list, tuple)
NUMBERS = (int, float)


def _is_number(value: 'RuntimeValue') -> bool:
    """Check for a number, excluding booleans."""
    return isinstance(value, NUMBERS) and not isinstance(value, bool)


def _same_type(actual: 'RuntimeValue', expected: 'RuntimeValue') -> bool:
    """Check that two values are comparable.

    Integers and floats are interchangeable, booleans are not numbers.
    """
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool)

    if _is_number(actual) and _is_number(expected):
        return True

    return isinstance(actual, type(expected))


def _unwrap(value: 'RuntimeValue') -> 'RuntimeValue':
    """Return the plain text of a secret."""
    if isinstance(value, SecretStr):
        return value.get_secret_value()

    return value


def _exact_match(actual: 'RuntimeValue', expected: 'RuntimeValue') -> bool:
    """Perform strict equality comparison.

    Args:
        actual: Actual value selected from the response.
        expected: Expected value defined in the document.

    Returns:
        True if values are strictly equal.

    Raises:
        AssertionError: If values differ or types do not match.
    """
    expected = _unwrap(expected)
    if expected is None:
        assert actual is None
        return True

    assert _same_type(actual, expected)
    assert actual == expected

    return True


def _seq_partial_match(actual: 'RuntimeValue', expected: 'RuntimeValue') -> bool:
    """Perform partial match for sequences.

    A partial sequence match succeeds if each expected element
    matches at least one element in the actual sequence.

    Args:
        actual: Actual sequence value.
        expected: Expected sequence value.

    Returns:
        True if the partial match succeeds.

    Raises:
        AssertionError: If inputs are not sequences.
    """
    assert isinstance(actual, SEQUENCES)
    assert isinstance(expected, SEQUENCES)

    for expected_item in expected:
        found = False
        for actual_item in actual:
            with suppress(AssertionError):
                found = _partial_match(actual_item, expected_item)
            if found:
                break
        assert found

    return True


def _map_partial_match(actual: 'RuntimeValue', expected: 'RuntimeValue') -> bool:
    """Perform partial match for mappings.

    A mapping partially matches if all keys from the expected mapping
    exist in the actual mapping and their values match recursively.

    Args:
        actual: Actual mapping value.
        expected: Expected mapping value.

    Returns:
        True if the partial match succeeds.

    Raises:
        AssertionError: If inputs are not mappings or keys are missing.
    """
    assert isinstance(actual, MAPPINGS)
    assert isinstance(expected, MAPPINGS)

    result = True
    for key, value in expected.items():
        assert key in actual
        result &= _partial_match(actual[key], value)

    return result


def _partial_match(actual: 'RuntimeValue', expected: 'RuntimeValue') -> bool:
    """Recursively perform partial matching.

    Matching strategy depends on the type of the expected value.
    """
    if isinstance(expected, SEQUENCES):
        return _seq_partial_match(actual, expected)

    if isinstance(expected, MAPPINGS):
        return _map_partial_match(actual, expected)

    return _exact_match(actual, expected)


def _match(actual: 'RuntimeValue', expected: 'RuntimeValue',
           options: 'Mapping[str, RuntimeValue]') -> bool:
    """Equality comparator."""
    check = (
        _partial_match
        if options.get('partial_match', False)
        else _exact_match
    )

    return check(actual, expected)


def _not_match(actual: 'RuntimeValue', expected: 'RuntimeValue',
               options: 'Mapping[str, RuntimeValue]') -> bool:
    """Inequality comparator."""
    try:
        return not _match(actual, expected, options)
    except AssertionError:
        return True


def _cmp(actual: 'RuntimeValue', expected: 'RuntimeValue',
         swap: bool = False, inclusive: bool = False) -> bool:
    """Base implementation for ordering comparisons."""
    expected = _unwrap(expected)
    if expected is None or actual is None:
        return actual is expected and inclusive

    assert _same_type(actual, expected)
    assert not isinstance(actual, MAPPINGS), 'mappings are not ordered'

    if swap:
        actual, expected = expected, actual

    assert actual < expected or (inclusive and actual == expected)

    return True


def _lt(actual: 'RuntimeValue', expected: 'RuntimeValue',
        options: 'Mapping[str, RuntimeValue]') -> bool:  # noqa: ARG001
    """Less-than comparator."""
    return _cmp(actual, expected)


def _lte(actual: 'RuntimeValue', expected: 'RuntimeValue',
         options: 'Mapping[str, RuntimeValue]') -> bool:  # noqa: ARG001
    """Less-than-or-equal comparator."""
    return _cmp(actual, expected, inclusive=True)


def _gt(actual: 'RuntimeValue', expected: 'RuntimeValue',
        options: 'Mapping[str, RuntimeValue]') -> bool:  # noqa: ARG001
    """Greater-than comparator."""
    return _cmp(actual, expected, swap=True)


def _gte(actual: 'RuntimeValue', expected: 'RuntimeValue',
         options: 'Mapping[str, RuntimeValue]') -> bool:  # noqa: ARG001
    """Greater-than-or-equal comparator."""
    return _cmp(actual, expected, swap=True, inclusive=True)


def _regex(actual: 'RuntimeValue', expected: 'RuntimeValue',
           options: 'Mapping[str, RuntimeValue]') -> bool:
    """Regex search comparator.

    Scalars are converted to text before matching, so `status` and
    numeric body fields can be matched too. Containers never match.
    """
    pattern = _unwrap(expected)
    if not isinstance(pattern, str) or actual is None:
        return False

    if isinstance(actual, (*MAPPINGS, *SEQUENCES)):
        return False

    flags = UNICODE
    if options.get('ignore_case'):
        flags |= IGNORECASE
    if options.get('multiline'):
        flags |= MULTILINE

    try:
        return search(pattern, stringify(actual), flags) is not None
    except RegexError as base:
        raise AssertionError(f'Invalid pattern {pattern!r}: {base}') from base


def _contains(actual: 'RuntimeValue', expected: 'RuntimeValue',
              options: 'Mapping[str, RuntimeValue]') -> bool:
    """Containment comparator.

    Strings contain substrings, sequences contain an element equal to
    (or, with `partial_match`, partially matching) the expected value,
    mappings contain the expected key.
    """
    expected = _unwrap(expected)

    if isinstance(actual, str):
        return isinstance(expected, str) and expected in actual

    if isinstance(actual, SEQUENCES):
        for item in actual:
            with suppress(AssertionError):
                if _match(item, expected, options):
                    return True
        return False

    if isinstance(actual, MAPPINGS):
        if isinstance(expected, MAPPINGS):
            return _map_partial_match(actual, expected)
        return isinstance(expected, Hashable) and expected in actual

    return False


def _exists(actual: 'RuntimeValue', expected: 'RuntimeValue',
            options: 'Mapping[str, RuntimeValue]') -> bool:  # noqa: ARG001
    """Presence comparator."""
    return (actual is not MISSING) is bool(expected)


#: Comparator implementations by assertion field name.
COMPARATORS: dict[str, 'Comparator'] = {
    'match': _match,
    'not_match': _not_match,
    'less_than': _lt,
    'less_than_or_equal': _lte,
    'greater_than': _gt,
    'greater_than_or_equal': _gte,
    'regex': _regex,
    'contains': _contains,
    'exists': _exists,
}


def compare(name: str, actual: 'RuntimeValue', expected: 'RuntimeValue',
            options: 'Mapping[str, RuntimeValue]') -> bool:
    """Apply a comparator by name.

    A missing actual value fails every comparator except `exists`.
    Values that can not be compared fail the comparison.

    Args:
        name: Comparator name.
        actual: Actual value, or `MISSING`.
        expected: Expected value.
        options: Assertion options.

    Returns:
        True if the comparison passes.

    Raises:
        KeyError: If the comparator is unknown.
    """
    comparator = COMPARATORS[name]
    if actual is MISSING and comparator is not _exists:
        return False

    try:
        return bool(comparator(actual, expected, options))
    except (AssertionError, TypeError):
        return False
