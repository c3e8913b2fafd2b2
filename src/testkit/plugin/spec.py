"""Pytest collector for test document files."""

from typing import TYPE_CHECKING

import pytest

from testkit.context import TestContext
from testkit.errors import TestkitError

from .case import TestCase

if TYPE_CHECKING:
    from collections.abc import Iterable

if TYPE_CHECKING:
    from _pytest._code.code import ExceptionInfo, TerminalRepr


class TestDocument(pytest.File):
    """Pytest file collector for test documents.

    The document is parsed at collection time, so a malformed document
    is reported as a collection error pointing at the offending line.
    """

    __test__ = False

    def collect(self) -> 'Iterable[TestCase]':
        """Parse the document and yield its test item.

        Yields:
            A single `TestCase` running the whole document.

        Raises:
            ParseError: If the document is malformed.
        """
        context = TestContext(str(self.path), self.path.read_text(encoding='utf-8'))
        plan = context.parse(self.config.testkit_parser)  # type: ignore[attr-defined]

        yield TestCase.from_parent(
            self,
            name=plan.title or self.path.name.split('.')[0],
            context=context,
        )

    def repr_failure(self, excinfo: 'ExceptionInfo[BaseException]') -> 'str | TerminalRepr':
        """Render document errors without a Python traceback."""
        if isinstance(excinfo.value, TestkitError):
            return str(excinfo.value)

        return super().repr_failure(excinfo)
