"""Tests for the command-line interface."""

from json import loads
from typing import TYPE_CHECKING

import pytest
from click.testing import CliRunner

from testkit.__main__ import cli
from testkit.core.verdicts import FileVerdict, RunState, StepStatus, StepVerdict
from testkit.driver import RunSummary
from testkit.errors import TransportError

if TYPE_CHECKING:
    from pathlib import Path
    from unittest.mock import MagicMock

    from pytest_mock import MockerFixture


@pytest.fixture
def runner(tmp_path: 'Path', monkeypatch: pytest.MonkeyPatch,
           mocker: 'MockerFixture') -> CliRunner:
    """Provide a CLI runner working in an empty directory."""
    monkeypatch.chdir(tmp_path)
    for name in ('TESTKIT_ROOT', 'TESTKIT_TIMEOUT', 'TESTKIT_CONCURRENCY', 'TESTKIT_FAIL_FAST'):
        monkeypatch.delenv(name, raising=False)
    mocker.patch('testkit.__main__.configure_logging')

    return CliRunner()


def passed_verdict(file: str = 'a.tk.yaml') -> FileVerdict:
    """Build the verdict of a passing one-step document."""
    return FileVerdict(
        file=file,
        state=RunState.COMPLETED,
        steps=(StepVerdict(index=0, name='Health', status=StepStatus.PASSED, attempts=1),),
    )


def failed_verdict(file: str = 'b.tk.yaml') -> FileVerdict:
    """Build the verdict of a document that failed on its first step."""
    return FileVerdict(
        file=file,
        state=RunState.FAILED,
        steps=(StepVerdict(
            index=0,
            name='Down',
            status=StepStatus.ERROR,
            attempts=1,
            diagnostic='ConnectError: Connection refused',
            error_kind='transport',
        ),),
        diagnostic='ConnectError: Connection refused',
        error_kind='transport',
    )


def test_schema(runner: CliRunner) -> None:
    """The schema command prints a JSON Schema of test documents."""
    result = runner.invoke(cli, ['schema'])

    assert result.exit_code == 0

    schema = loads(result.output)

    assert schema['title'] == 'Plan'
    assert 'steps' in schema['properties']
    assert 'vars' in schema['properties']


def test_empty_document(runner: CliRunner, tmp_path: 'Path') -> None:
    """An empty document passes."""
    (tmp_path / 'empty.tk.yaml').write_text('', encoding='utf-8')

    result = runner.invoke(cli, ['test', 'empty.tk.yaml'])

    assert result.exit_code == 0
    assert 'PASSED' in result.output


def test_malformed_document(runner: CliRunner, tmp_path: 'Path') -> None:
    """A malformed document fails the invocation with its location."""
    (tmp_path / 'broken.tk.yaml').write_text('- name: Broken\n  GET: [\n', encoding='utf-8')

    result = runner.invoke(cli, ['test', 'broken.tk.yaml'])

    assert result.exit_code == 1
    assert 'Invalid YAML' in result.output
    assert 'broken.tk.yaml' in result.output


def test_file_fatal_error(runner: CliRunner, tmp_path: 'Path',
                          mocker: 'MockerFixture') -> None:
    """A fatal error of a single document is reported as an error."""
    (tmp_path / 'down.tk.yaml').write_text('', encoding='utf-8')
    mocker.patch(
        'testkit.__main__.run_file',
        side_effect=TransportError('ConnectError: Connection refused', method='GET', url='http://x'),
    )

    result = runner.invoke(cli, ['test', 'down.tk.yaml'])

    assert result.exit_code == 1
    assert 'Error: ConnectError: Connection refused' in result.output


@pytest.mark.parametrize('verdict, exit_code', (
    pytest.param(passed_verdict(), 0, id='passed'),
    pytest.param(
        passed_verdict().model_copy(update={'state': RunState.CANCELLED}), 1,
        id='cancelled',
    ),
))
def test_file_exit_code(runner: CliRunner, tmp_path: 'Path', mocker: 'MockerFixture',
                        verdict: FileVerdict, exit_code: int) -> None:
    """The exit status of a single document follows its verdict."""
    (tmp_path / 'a.tk.yaml').write_text('', encoding='utf-8')
    run_file: MagicMock = mocker.patch('testkit.__main__.run_file', return_value=verdict)

    result = runner.invoke(cli, ['test', 'a.tk.yaml', '--timeout', '2.5', '--fail-fast'])

    assert result.exit_code == exit_code

    settings = run_file.call_args.kwargs['settings']

    assert settings.timeout == 2.5
    assert settings.fail_fast is True


@pytest.mark.parametrize('verdicts, exit_code', (
    pytest.param((), 0, id='nothing found'),
    pytest.param((passed_verdict(),), 0, id='all passed'),
    pytest.param((passed_verdict(), failed_verdict()), 1, id='one failed'),
))
def test_directory_exit_code(runner: CliRunner, mocker: 'MockerFixture',
                             verdicts: tuple[FileVerdict, ...], exit_code: int) -> None:
    """The exit status of a scan follows the summary."""
    run_directory: MagicMock = mocker.patch(
        'testkit.__main__.run_directory',
        return_value=RunSummary(verdicts=verdicts),
    )

    result = runner.invoke(cli, ['test', '--root', '.', '--concurrency', '4'])

    assert result.exit_code == exit_code
    assert f'{len(verdicts)} total' in result.output

    root, = run_directory.call_args.args
    settings = run_directory.call_args.kwargs['settings']

    assert str(root) == '.'
    assert settings.concurrency == 4


def test_missing_file_scans_root(runner: CliRunner, mocker: 'MockerFixture') -> None:
    """A file argument that does not exist falls back to a scan."""
    run_file: MagicMock = mocker.patch('testkit.__main__.run_file')
    run_directory: MagicMock = mocker.patch(
        'testkit.__main__.run_directory',
        return_value=RunSummary(verdicts=(failed_verdict(),)),
    )

    result = runner.invoke(cli, ['test', 'missing.tk.yaml'])

    assert result.exit_code == 1
    assert 'ConnectError: Connection refused' in result.output
    run_file.assert_not_called()
    run_directory.assert_called_once()


@pytest.mark.parametrize('args', (
    pytest.param(['--concurrency', '0'], id='concurrency'),
    pytest.param(['--timeout', '0'], id='timeout'),
    pytest.param(['--log-level', 'LOUD'], id='log level'),
))
def test_invalid_options(runner: CliRunner, args: list[str]) -> None:
    """Out-of-range options are usage errors."""
    result = runner.invoke(cli, ['test', *args])

    assert result.exit_code == 2


def test_environment_settings(runner: CliRunner, mocker: 'MockerFixture',
                              monkeypatch: pytest.MonkeyPatch) -> None:
    """Settings not given on the command line come from the environment."""
    monkeypatch.setenv('TESTKIT_TIMEOUT', '7')
    run_directory: MagicMock = mocker.patch(
        'testkit.__main__.run_directory',
        return_value=RunSummary(),
    )

    result = runner.invoke(cli, ['test'])

    assert result.exit_code == 0
    assert run_directory.call_args.kwargs['settings'].timeout == 7
