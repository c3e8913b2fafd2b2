"""Human-readable rendering of verdicts.

`Reporter` prints verdicts to a `rich` console for the command-line
runner. `format_failures` renders the same information as plain text
for pytest failure reports.
"""

from os import linesep
from typing import TYPE_CHECKING

from rich.table import Table
from rich.text import Text

from testkit.core.verdicts import RunState, StepStatus

if TYPE_CHECKING:
    from rich.console import Console

if TYPE_CHECKING:
    from testkit.core.verdicts import FileVerdict, StepVerdict
    from testkit.driver import RunSummary

STATUS_STYLES = {
    StepStatus.PASSED: 'green',
    StepStatus.FAILED: 'red',
    StepStatus.ERROR: 'bold red',
    StepStatus.NOT_ATTEMPTED: 'dim',
}

OUTCOME_STYLES = {
    'passed': 'bold green',
    'failed': 'bold red',
    'cancelled': 'bold yellow',
}


def format_step(step: 'StepVerdict') -> list[str]:
    """Render the problems of one step as plain text lines."""
    lines = [f'step {step.index + 1} "{step.name}": {step.status}']

    if step.status is StepStatus.ERROR and step.diagnostic:
        lines.append(f'    {step.diagnostic}')

    for result in step.failures:
        lines.append(f'    assertion {result.index + 1}: {result.message}')
        lines.append(f'        expected ({result.comparator}): {result.expected!r}')
        lines.append(f'        actual: {result.actual!r}')

    if step.status is StepStatus.FAILED and not step.failures and step.diagnostic:
        lines.append(f'    {step.diagnostic}')

    return lines


def format_failures(verdict: 'FileVerdict') -> str:
    """Render the failures of a document as plain text.

    Args:
        verdict: File verdict.

    Returns:
        Multi-line description of failed steps and the fatal error.
    """
    lines = [f'{verdict.file}: {verdict.outcome}']

    for step in verdict.steps:
        if step.tolerated or step.status is StepStatus.NOT_ATTEMPTED:
            continue
        lines.extend(format_step(step))

    if skipped := verdict.count(StepStatus.NOT_ATTEMPTED):
        lines.append(f'{skipped} step(s) not attempted')

    if verdict.diagnostic:
        lines.append(verdict.diagnostic)

    return linesep.join(lines)


class Reporter:
    """Console renderer of verdicts."""

    def __init__(self, console: 'Console', *, verbose: bool = False) -> None:
        """Initialize the reporter.

        Args:
            console: Output console.
            verbose: Also list the assertions of passing steps.
        """
        self.console = console
        self.verbose = verbose

    def file(self, verdict: 'FileVerdict') -> None:
        """Print the verdict of one document."""
        title = Text(verdict.file, style='bold')
        if verdict.title:
            title.append(f' ({verdict.title})', style='italic')
        title.append('  ')
        title.append(verdict.outcome.upper(), style=OUTCOME_STYLES[verdict.outcome])
        self.console.print(title)

        if verdict.steps:
            self.console.print(self.steps_table(verdict))

        if verdict.state is not RunState.COMPLETED and verdict.diagnostic:
            self.console.print(Text(verdict.diagnostic, style='red'))

        self.console.print()

    def steps_table(self, verdict: 'FileVerdict') -> Table:
        """Build the table of step results."""
        table = Table(show_header=True, header_style='bold', box=None, pad_edge=False)
        table.add_column('#', justify='right')
        table.add_column('Step')
        table.add_column('Status')
        table.add_column('Time', justify='right')
        table.add_column('Details')

        for step in verdict.steps:
            details = Text()
            if step.status is StepStatus.ERROR and step.diagnostic:
                details.append(step.diagnostic)
            for result in step.assertions:
                if result.passed and not self.verbose:
                    continue
                if details:
                    details.append('\n')
                details.append(
                    result.message or result.label,
                    style='green' if result.passed else 'red',
                )
            if step.status is StepStatus.FAILED and not step.failures and step.diagnostic:
                details.append(step.diagnostic, style='red')

            status = str(step.status)
            if step.attempts > 1:
                status += f' ({step.attempts} attempts)'

            table.add_row(
                str(step.index + 1),
                step.name,
                Text(status, style=STATUS_STYLES[step.status]),
                f'{step.elapsed_ms:.0f} ms' if step.attempts else '',
                details,
            )

        return table

    def summary(self, summary: 'RunSummary') -> None:
        """Print the aggregate of an invocation."""
        style = 'bold green' if summary.ok else 'bold red'
        self.console.print(Text(
            f'{summary.passed} passed, {summary.failed} failed, {summary.total} total',
            style=style,
        ))
