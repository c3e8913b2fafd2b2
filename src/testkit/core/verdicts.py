"""Structured results of test document execution.

Verdicts are immutable once produced. They carry the data any report
renderer needs: step names, resolved requests, captured responses,
assertion-level expected/actual values, timing and error messages.
"""

from enum import StrEnum
from typing import Any

from pydantic import Field

from testkit.errors import TestkitError  # noqa: TC001
from testkit.models import SchemaModel
from testkit.values import Value  # noqa: TC001


class StepStatus(StrEnum):
    """Outcome of a single step."""

    PASSED = 'passed'
    #: The request was executed but an assertion or a capture failed.
    FAILED = 'failed'
    #: The step could not be executed: resolution, request or transport failure.
    ERROR = 'error'
    NOT_ATTEMPTED = 'not_attempted'


class RunState(StrEnum):
    """Terminal states of a document run."""

    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'


class RequestSnapshot(SchemaModel):
    """Fully resolved request, as dispatched."""

    method: str
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    params: dict[str, Value] = Field(default_factory=dict)
    body: Value = None
    json_body: Value = None
    form: dict[str, Value] | None = None


class ResponseSnapshot(SchemaModel):
    """Captured response data.

    Header names are stored lower-cased so lookups are case-insensitive.
    """

    status: int
    headers: dict[str, str] = Field(default_factory=dict)
    text: str = ''
    json_body: Any = None
    is_json: bool = False
    elapsed_ms: float = 0.0

    def header(self, name: str) -> str | None:
        """Return a header value by case-insensitive name."""
        return self.headers.get(name.lower())


class AssertionResult(SchemaModel):
    """Result of one assertion of a step."""

    index: int
    title: str | None = None
    target: str
    path: str | None = None
    comparator: str
    expected: Any = None
    actual: Any = None
    passed: bool
    message: str | None = None

    @property
    def label(self) -> str:
        """Human-readable target description."""
        if self.path is None:
            return self.target

        return f'{self.target} {self.path}'


class StepVerdict(SchemaModel):
    """Outcome of one step of a plan."""

    index: int
    name: str
    status: StepStatus
    assertions: tuple[AssertionResult, ...] = ()
    diagnostic: str | None = None
    error_kind: str | None = None
    elapsed_ms: float = 0.0
    attempts: int = 0
    request: RequestSnapshot | None = None
    response: ResponseSnapshot | None = None
    captured: dict[str, Value] = Field(default_factory=dict)
    optional: bool = False

    @property
    def passed(self) -> bool:
        """Whether the step passed."""
        return self.status is StepStatus.PASSED

    @property
    def failures(self) -> tuple[AssertionResult, ...]:
        """Failed assertion results."""
        return tuple(item for item in self.assertions if not item.passed)

    @property
    def tolerated(self) -> bool:
        """Whether the step counts as passed for its document.

        A transport failure of an optional step is recorded but does not
        fail the document.
        """
        return self.passed or (
            self.optional
            and self.status is StepStatus.ERROR
            and self.error_kind == 'transport'
        )


class FileVerdict(SchemaModel):
    """Aggregate outcome of one test document."""

    file: str
    state: RunState
    title: str | None = None
    steps: tuple[StepVerdict, ...] = ()
    diagnostic: str | None = None
    error_kind: str | None = None
    error: TestkitError | None = Field(default=None, exclude=True, repr=False)

    @property
    def passed(self) -> bool:
        """A document passes iff it completed and every step passed."""
        return self.state is RunState.COMPLETED and all(step.tolerated for step in self.steps)

    @property
    def outcome(self) -> str:
        """Verdict as `passed`, `failed` or `cancelled`."""
        if self.state is RunState.CANCELLED:
            return 'cancelled'

        return 'passed' if self.passed else 'failed'

    def count(self, status: StepStatus) -> int:
        """Return the number of steps with the given status."""
        return sum(1 for step in self.steps if step.status is status)
