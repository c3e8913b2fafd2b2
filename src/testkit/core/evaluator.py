"""Evaluation of assertions and capture directives against responses.

Both assertions and capture directives address a fragment of the
captured response. The fragment is selected by a target (`status`,
`header`, `body`, `time`) and an optional path; a fragment that does
not exist is reported as `MISSING` rather than `None`, so a JSON
`null` and an absent key stay distinguishable.
"""

from logging import getLogger
from typing import TYPE_CHECKING

from .comparators import compare
from .lookups import MISSING, PathLookup
from .verdicts import AssertionResult

if TYPE_CHECKING:
    from collections.abc import Iterable

if TYPE_CHECKING:
    from testkit.schema import Assertion
    from testkit.values import RuntimeValue

    from .verdicts import ResponseSnapshot

logger = getLogger(__name__)


def select(response: 'ResponseSnapshot', target: str,
           path: str | None = None) -> 'RuntimeValue':
    """Select a fragment of a response.

    Args:
        response: Captured response.
        target: One of `status`, `header`, `body`, `time`.
        path: Header name or body path expression.

    Returns:
        The selected value, or `MISSING`.
    """
    match target:
        case 'status':
            return response.status
        case 'time':
            return response.elapsed_ms
        case 'header':
            value = response.header(path or '')
            return MISSING if value is None else value
        case 'body' if response.is_json:
            return PathLookup(path or '').resolve(response.json_body)
        case 'body' if not (path or '').strip(' .$'):
            return response.text if response.text else MISSING
        case _:
            return MISSING


def capture(response: 'ResponseSnapshot', source: str) -> 'RuntimeValue':
    """Extract a value for a capture directive.

    Args:
        response: Captured response.
        source: Capture source, e.g. `body.data.id` or `headers.ETag`.

    Returns:
        The captured value, or `MISSING`.
    """
    if source in ('status', 'time'):
        return select(response, source)

    if source.startswith('headers.'):
        return select(response, 'header', source.removeprefix('headers.'))

    return select(response, 'body', source.removeprefix('body'))


def describe(assertion: 'Assertion', actual: 'RuntimeValue', passed: bool) -> str:
    """Build a human-readable assertion outcome message."""
    name, expected = assertion.operation()
    operator = name.replace('_', ' ')

    if actual is MISSING:
        if passed:
            return f'{assertion.label} is absent'
        return f'{assertion.label} is missing'

    if name == 'exists':
        return f'{assertion.label} is present'

    if passed:
        return f'{assertion.label} {operator} {expected!r}'

    return f'expected {assertion.label} {operator} {expected!r}, got {actual!r}'


class AssertionEvaluator:
    """Evaluator of step assertions.

    Every assertion is evaluated, in declaration order, even when an
    earlier one fails. Evaluation is pure: the response is not changed.
    """

    def evaluate_one(self, index: int, assertion: 'Assertion',
                     response: 'ResponseSnapshot') -> AssertionResult:
        """Evaluate a single assertion.

        Args:
            index: Position of the assertion in the step.
            assertion: Resolved assertion.
            response: Captured response.

        Returns:
            Assertion result with the expected and actual values.
        """
        name, expected = assertion.operation()
        actual = select(response, assertion.target, assertion.path)

        options = {
            'partial_match': assertion.partial_match,
            'ignore_case': assertion.ignore_case,
            'multiline': assertion.multiline,
        }
        passed = compare(name, actual, expected, options)

        if not passed:
            logger.debug('Assertion %d failed: %s', index + 1, assertion.label)

        return AssertionResult(
            index=index,
            title=assertion.title,
            target=assertion.target,
            path=assertion.path,
            comparator=name,
            expected=expected,
            actual=None if actual is MISSING else actual,
            passed=passed,
            message=describe(assertion, actual, passed),
        )

    def evaluate(self, assertions: 'Iterable[Assertion]',
                 response: 'ResponseSnapshot') -> tuple[AssertionResult, ...]:
        """Evaluate all assertions of a step against its response.

        Args:
            assertions: Resolved assertions, in declaration order.
            response: Captured response.

        Returns:
            Ordered assertion results.
        """
        return tuple(
            self.evaluate_one(index, assertion, response)
            for index, assertion in enumerate(assertions)
        )
