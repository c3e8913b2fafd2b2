"""Per-document execution state.

A `TestContext` is created for one test document, owned by exactly one
run and never shared between documents. It holds the raw text, the
lazily parsed plan, the variable table and the step verdicts produced
so far.
"""

from typing import TYPE_CHECKING

from testkit.core.resolver import VariableResolver

if TYPE_CHECKING:
    from collections.abc import Mapping

if TYPE_CHECKING:
    from testkit.core.parser import DocumentParser
    from testkit.core.verdicts import FileVerdict, StepVerdict
    from testkit.schema import Plan
    from testkit.values import Value


class VariableTable(dict[str, 'Value']):
    """Variables of a run: initial document variables, environment
    inputs and values captured by executed steps.

    Binding a name again replaces the previous value.
    """

    def bind(self, values: 'Mapping[str, Value]') -> None:
        """Bind several variables, last write wins."""
        self.update(values)

    def resolver(self) -> VariableResolver:
        """Return a placeholder resolver over the current table."""
        return VariableResolver(self)


class TestContext:
    """Execution context of a single test document."""

    __test__ = False

    def __init__(self, file: str, source: str) -> None:
        """Initialize the context.

        Args:
            file: Opaque identifier of the document, usually its path.
            source: Raw document text.
        """
        self.file = file
        self.source = source

        self.plan, self.variables, self.verdicts = self.fresh_state()
        self.verdict: FileVerdict | None = None

    @staticmethod
    def fresh_state() -> tuple['Plan | None', VariableTable, list['StepVerdict']]:
        """Return the initial state of a context: no plan yet, an empty
        variable table and no step verdicts.
        """
        return None, VariableTable(), []

    def reset(self) -> None:
        """Drop the results of a previous run, keeping the parsed plan."""
        _, self.variables, self.verdicts = self.fresh_state()
        self.verdict = None

    def parse(self, parser: 'DocumentParser') -> 'Plan':
        """Parse the document once and cache the plan.

        Raises:
            ParseError: If the document is malformed.
        """
        if self.plan is None:
            self.plan = parser.parse(self.source, filename=self.file)

        return self.plan

    def __repr__(self) -> str:
        return f'TestContext({self.file!r})'
