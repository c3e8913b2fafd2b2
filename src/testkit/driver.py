"""Invocation modes of the runner.

Two modes are supported:

- single file: the document is run and its first fatal error is
  raised to the caller (fail-fast);
- directory scan: every discovered document is run, a failure of one
  document is recorded in its verdict and never stops the others
  (continue-on-error). The summary fails if any document failed.

In directory-scan mode documents run as independent tasks, at most
`concurrency` at a time. Steps of one document always run in order.
"""

from asyncio import Semaphore, gather
from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import Field

from testkit.core.executor import RequestExecutor
from testkit.core.loader import discover, load_context
from testkit.core.orchestrator import run
from testkit.core.parser import DocumentParser
from testkit.core.verdicts import FileVerdict, RunState
from testkit.errors import ParseError
from testkit.models import SchemaModel
from testkit.settings import RunnerSettings

if TYPE_CHECKING:
    from asyncio import Event
    from collections.abc import Sequence
    from pathlib import Path

logger = getLogger(__name__)


class RunSummary(SchemaModel):
    """Aggregate of the file verdicts of one invocation."""

    verdicts: tuple[FileVerdict, ...] = Field(default=())

    @property
    def total(self) -> int:
        """Number of documents attempted."""
        return len(self.verdicts)

    @property
    def passed(self) -> int:
        """Number of passing documents."""
        return sum(1 for verdict in self.verdicts if verdict.passed)

    @property
    def failed(self) -> int:
        """Number of failing or cancelled documents."""
        return self.total - self.passed

    @property
    def ok(self) -> bool:
        """Whether every document passed."""
        return self.failed == 0

    @property
    def exit_code(self) -> int:
        """Process exit status for the invocation."""
        return 0 if self.ok else 1


async def run_file(path: 'Path', *,
                   settings: RunnerSettings | None = None,
                   executor: RequestExecutor | None = None,
                   cancel: 'Event | None' = None) -> FileVerdict:
    """Run a single test document in fail-fast mode.

    Args:
        path: Path of the document.
        settings: Runner settings.
        executor: Shared request executor.
        cancel: Cancellation event.

    Returns:
        File verdict of a run without fatal errors.

    Raises:
        TestkitError: The first fatal error of the document.
    """
    context = load_context(path)

    return await run(
        context,
        settings=settings,
        executor=executor,
        cancel=cancel,
        raise_errors=True,
    )


async def run_paths(paths: 'Sequence[Path]', *,
                    settings: RunnerSettings | None = None,
                    executor: RequestExecutor | None = None,
                    cancel: 'Event | None' = None) -> RunSummary:
    """Run several documents in continue-on-error mode.

    Every document is attempted and produces a verdict, including
    documents that can not be read or parsed. An unexpected exception
    while running a document is logged and recorded as a failed
    verdict of the `internal` kind.

    Args:
        paths: Paths of the documents.
        settings: Runner settings.
        executor: Shared request executor; created for the invocation
            if omitted.
        cancel: Cancellation event.

    Returns:
        Summary with one verdict per path, in input order.
    """
    settings = settings or RunnerSettings()
    parser = DocumentParser()
    limit = Semaphore(settings.concurrency)

    async def run_one(path: 'Path', executor: RequestExecutor) -> FileVerdict:
        async with limit:
            try:
                context = load_context(path)
            except ParseError as error:
                logger.error('Can not load %s: %s', path, error.message)
                return FileVerdict(
                    file=str(path),
                    state=RunState.FAILED,
                    diagnostic=str(error),
                    error_kind=error.kind,
                    error=error,
                )

            try:
                return await run(
                    context,
                    settings=settings,
                    executor=executor,
                    cancel=cancel,
                    parser=parser,
                )
            except Exception as error:
                logger.exception('Unexpected error while running %s', path)
                return FileVerdict(
                    file=context.file,
                    state=RunState.FAILED,
                    diagnostic=f'{type(error).__name__}: {error}',
                    error_kind='internal',
                )

    async def run_all(executor: RequestExecutor) -> list[FileVerdict]:
        return await gather(*(run_one(path, executor) for path in paths))

    if executor is None:
        async with RequestExecutor(settings=settings) as owned:
            verdicts = await run_all(owned)
    else:
        verdicts = await run_all(executor)

    summary = RunSummary(verdicts=tuple(verdicts))
    logger.info('%d of %d test documents passed', summary.passed, summary.total)

    return summary


async def run_directory(root: 'Path', *,
                        settings: RunnerSettings | None = None,
                        executor: RequestExecutor | None = None,
                        cancel: 'Event | None' = None) -> RunSummary:
    """Discover and run every test document under a directory.

    Args:
        root: Directory to scan.
        settings: Runner settings.
        executor: Shared request executor.
        cancel: Cancellation event.

    Returns:
        Summary with one verdict per discovered document.
    """
    paths = discover(root)
    if not paths:
        logger.warning('No test documents found under %s', root)

    return await run_paths(paths, settings=settings, executor=executor, cancel=cancel)
