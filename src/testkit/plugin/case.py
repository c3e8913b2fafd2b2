"""Pytest item running one test document."""

from asyncio import run as run_async
from typing import TYPE_CHECKING

import pytest

from testkit.core.orchestrator import run
from testkit.errors import TestkitError
from testkit.report import format_failures

if TYPE_CHECKING:
    from typing import Any

if TYPE_CHECKING:
    from _pytest._code.code import ExceptionInfo, TerminalRepr

    from testkit.context import TestContext


class DocumentFailure(AssertionError):
    """Failure of a test document run under pytest."""


class TestCase(pytest.Item):
    """Pytest item executing a whole test document.

    Steps run in document order. The item fails when the document
    verdict does not pass, with a report of every failed step.
    """

    __test__ = False

    def __init__(self, *, context: 'TestContext', **kwargs: 'Any') -> None:
        """Initialize the item.

        Args:
            context: Context of the collected document.
            **kwargs: Keyword pytest.Item arguments.
        """
        super().__init__(**kwargs)

        self.context = context

    def runtest(self) -> None:
        """Run the document and fail on a non-passing verdict."""
        verdict = run_async(run(
            self.context,
            settings=self.config.testkit_settings,  # type: ignore[attr-defined]
            parser=self.config.testkit_parser,  # type: ignore[attr-defined]
        ))

        if not verdict.passed:
            raise DocumentFailure(format_failures(verdict))

    def repr_failure(self, excinfo: 'ExceptionInfo[BaseException]',
                     style: 'Any' = None) -> 'str | TerminalRepr':  # noqa: ANN401
        """Render document failures without a Python traceback."""
        if isinstance(excinfo.value, (DocumentFailure, TestkitError)):
            return str(excinfo.value)

        return super().repr_failure(excinfo, style=style)

    def reportinfo(self) -> tuple[str, int | None, str]:
        """Location reported by pytest."""
        return str(self.path), None, f'test document: {self.name}'
