"""Command-line interface of the runner.

    testkit test [FILE] [--root DIR] [--concurrency N] [--timeout S]
                 [--fail-fast] [--log-level LEVEL]
    testkit schema

If FILE exists it is run alone and its first fatal error fails the
invocation. Otherwise every `*.tk.yaml` document under the root
directory is run and each failure is recorded without stopping the
others. The exit status is 0 when every document passed and 1 otherwise.
"""

from asyncio import run
from json import dumps
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING

from click import Choice, ClickException, FloatRange, IntRange, argument, echo, group, option, pass_context
from click import Path as PathParam
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console

from testkit.driver import run_directory, run_file
from testkit.errors import TestkitError
from testkit.logs import configure_logging
from testkit.report import Reporter
from testkit.schema import Plan
from testkit.settings import RunnerSettings

if TYPE_CHECKING:
    from click import Context

logger = getLogger('testkit')

LOG_LEVELS = ('CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG')


def load_settings(**overrides: object) -> RunnerSettings:
    """Build settings from the environment and command-line overrides.

    Options that were not given on the command line are left to the
    environment and the `.env` file.

    Raises:
        ClickException: If the resulting settings are invalid.
    """
    try:
        return RunnerSettings(**{
            name: value
            for name, value in overrides.items()
            if value is not None
        })
    except ValidationError as base:
        raise ClickException(f'Invalid settings: {base}') from base


@group(help='Run YAML API test documents.')
def cli() -> None:
    """Root CLI group."""
    load_dotenv()


@cli.command(
    name='test',
    help=(
        'Run a single test document, or every *.tk.yaml / *.tk.yml '
        'document under the root directory.'
    ),
)
@argument(
    'file',
    type=PathParam(path_type=Path),
    required=False,
)
@option(
    '-r', '--root',
    type=PathParam(file_okay=False, path_type=Path),
    help='Directory scanned for test documents.',
)
@option(
    '-c', '--concurrency',
    type=IntRange(min=1),
    help='Maximum number of documents run at the same time.',
)
@option(
    '-t', '--timeout',
    type=FloatRange(min=0, min_open=True),
    help='Default request timeout in seconds.',
)
@option(
    '--fail-fast/--no-fail-fast',
    default=None,
    help='Stop a document at its first failing step.',
)
@option(
    '-l', '--log-level',
    type=Choice(LOG_LEVELS, case_sensitive=False),
    help='Log level.',
)
@option(
    '-v', '--verbose',
    is_flag=True,
    default=False,
    help='Also report passing assertions.',
)
@pass_context
def run_tests(ctx: 'Context', file: Path | None, root: Path | None,  # noqa: PLR0913
              concurrency: int | None, timeout: float | None,
              fail_fast: bool | None, log_level: str | None,
              verbose: bool) -> None:
    """Run test documents and exit with the aggregate status."""
    settings = load_settings(
        root=root,
        concurrency=concurrency,
        timeout=timeout,
        fail_fast=fail_fast,
        log_level=log_level.upper() if log_level else None,
    )

    configure_logging(settings.log_level)
    reporter = Reporter(Console(), verbose=verbose)

    if file is not None and file.exists():
        try:
            verdict = run(run_file(file, settings=settings))
        except TestkitError as error:
            raise ClickException(str(error)) from error

        reporter.file(verdict)
        ctx.exit(0 if verdict.passed else 1)

    if file is not None:
        logger.warning('File %s does not exist, scanning %s', file, settings.root)

    summary = run(run_directory(settings.root, settings=settings))
    for verdict in summary.verdicts:
        reporter.file(verdict)
    reporter.summary(summary)

    ctx.exit(summary.exit_code)


@cli.command(
    name='schema',
    help='Print the test document JSON Schema to standard output.',
)
def print_schema() -> None:
    """Generate and print the JSON Schema."""
    schema = Plan.model_json_schema(by_alias=True)
    echo(dumps(schema, ensure_ascii=False, indent=2))


if __name__ == '__main__':
    cli()
