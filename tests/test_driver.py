"""Tests for discovery and invocation modes."""

from asyncio import run
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from testkit.core.loader import discover, is_document, load_context
from testkit.core.verdicts import FileVerdict, RunState
from testkit.driver import RunSummary, run_directory, run_file, run_paths
from testkit.errors import ParseError, TransportError
from testkit.settings import RunnerSettings

if TYPE_CHECKING:
    from collections.abc import Callable

    import httpx
    from pyfakefs.fake_filesystem import FakeFilesystem

    from testkit.core.executor import RequestExecutor

    from .conftest import FakeService

PASSING = '''
- name: Health
  GET: http://api.test/health
  assert:
    - status: 200
'''

FAILING = '''
- name: Health
  GET: http://api.test/health
  assert:
    - status: 500
'''

BROKEN = '''
- name: Broken
  GET: http://api.test/health
  asert:
    - status: 200
'''

DOWN = '''
- name: Down
  GET: http://api.test/down
'''

BOOM = '''
- name: Boom
  GET: http://api.test/boom
'''


@pytest.mark.parametrize('name, expected', (
    pytest.param('users.tk.yaml', True, id='yaml'),
    pytest.param('users.tk.yml', True, id='yml'),
    pytest.param('users.yaml', False, id='no marker'),
    pytest.param('users.tk.json', False, id='other extension'),
    pytest.param('.tk.yaml', False, id='no stem'),
))
def test_is_document(name: str, expected: bool) -> None:
    """Recognize test document file names."""
    assert is_document(Path(name)) is expected


def test_discover(fs: 'FakeFilesystem') -> None:
    """Documents are found recursively and sorted."""
    fs.create_file('/suite/b.tk.yaml')
    fs.create_file('/suite/a.tk.yml')
    fs.create_file('/suite/nested/c.tk.yaml')
    fs.create_file('/suite/readme.yaml')
    fs.create_file('/suite/config.json')
    fs.create_dir('/suite/folder.tk.yaml')

    assert discover(Path('/suite')) == [
        Path('/suite/a.tk.yml'),
        Path('/suite/b.tk.yaml'),
        Path('/suite/nested/c.tk.yaml'),
    ]


def test_discover_empty(fs: 'FakeFilesystem') -> None:
    """An empty directory yields no documents."""
    fs.create_dir('/suite')

    assert discover(Path('/suite')) == []


def test_load_context(fs: 'FakeFilesystem') -> None:
    """Loading reads the text without parsing it."""
    fs.create_file('/suite/a.tk.yaml', contents=BROKEN)

    context = load_context('/suite/a.tk.yaml')

    assert context.file == '/suite/a.tk.yaml'
    assert context.source == BROKEN
    assert context.plan is None


def test_load_context_unreadable(fs: 'FakeFilesystem') -> None:
    """An unreadable document is reported as a parse error."""
    fs.create_dir('/suite')

    with pytest.raises(ParseError, match=r'^Can not read test document') as error:
        load_context('/suite/missing.tk.yaml')

    assert error.value.context == {'filename': '/suite/missing.tk.yaml'}


def test_run_file(tmp_path: Path, executor: 'RequestExecutor',
                  settings: RunnerSettings) -> None:
    """A single passing document."""
    path = tmp_path / 'health.tk.yaml'
    path.write_text(PASSING, encoding='utf-8')

    verdict = run(run_file(path, settings=settings, executor=executor))

    assert verdict.passed is True
    assert verdict.file == str(path)


def test_run_file_raises(tmp_path: Path, executor: 'RequestExecutor',
                         settings: RunnerSettings) -> None:
    """Single-file mode raises the first fatal error."""
    broken = tmp_path / 'broken.tk.yaml'
    broken.write_text(BROKEN, encoding='utf-8')
    down = tmp_path / 'down.tk.yaml'
    down.write_text(DOWN, encoding='utf-8')

    with pytest.raises(ParseError, match=r'^Extra inputs are not permitted'):
        run(run_file(broken, settings=settings, executor=executor))

    with pytest.raises(TransportError, match=r'^ConnectError'):
        run(run_file(down, settings=settings, executor=executor))


def test_run_file_assertion_failure(tmp_path: Path, executor: 'RequestExecutor',
                                    settings: RunnerSettings) -> None:
    """Assertion failures are not fatal in single-file mode."""
    path = tmp_path / 'failing.tk.yaml'
    path.write_text(FAILING, encoding='utf-8')

    verdict = run(run_file(path, settings=settings, executor=executor))

    assert verdict.state is RunState.COMPLETED
    assert verdict.passed is False


@pytest.mark.parametrize('concurrency', (1, 3))
def test_run_directory(tmp_path: Path, executor: 'RequestExecutor',
                       service: 'FakeService', concurrency: int) -> None:
    """A broken document does not stop the other documents."""
    (tmp_path / '1-first.tk.yaml').write_text(PASSING, encoding='utf-8')
    (tmp_path / '2-broken.tk.yaml').write_text(BROKEN, encoding='utf-8')
    (tmp_path / 'nested').mkdir()
    (tmp_path / 'nested' / '3-third.tk.yml').write_text(PASSING, encoding='utf-8')
    (tmp_path / 'notes.yaml').write_text(BROKEN, encoding='utf-8')

    settings = RunnerSettings(concurrency=concurrency)
    summary = run(run_directory(tmp_path, settings=settings, executor=executor))

    first, broken, third = summary.verdicts

    assert first.file.endswith('1-first.tk.yaml')
    assert first.passed is True
    assert broken.state is RunState.FAILED
    assert broken.error_kind == 'parse'
    assert broken.steps == ()
    assert third.passed is True

    assert summary.total == 3
    assert summary.passed == 2
    assert summary.failed == 1
    assert summary.ok is False
    assert summary.exit_code == 1
    assert len(service.requests) == 2


def test_run_directory_unexpected_error(tmp_path: Path, service: 'FakeService',
                                        make_executor: 'Callable[..., RequestExecutor]',
                                        caplog: pytest.LogCaptureFixture) -> None:
    """An unexpected exception fails its document only."""
    def handler(request: 'httpx.Request') -> 'httpx.Response':
        if request.url.path == '/boom':
            raise RuntimeError('handler exploded')
        return service(request)

    (tmp_path / '1-first.tk.yaml').write_text(PASSING, encoding='utf-8')
    (tmp_path / '2-boom.tk.yaml').write_text(BOOM, encoding='utf-8')
    (tmp_path / '3-third.tk.yaml').write_text(PASSING, encoding='utf-8')

    summary = run(run_directory(tmp_path, settings=RunnerSettings(), executor=make_executor(handler)))

    first, boom, third = summary.verdicts

    assert first.passed is True
    assert boom.state is RunState.FAILED
    assert boom.error_kind == 'internal'
    assert boom.diagnostic == 'RuntimeError: handler exploded'
    assert boom.file.endswith('2-boom.tk.yaml')
    assert third.passed is True

    assert summary.exit_code == 1
    assert 'Unexpected error while running' in caplog.text


def test_run_paths_unreadable(tmp_path: Path, executor: 'RequestExecutor') -> None:
    """An unreadable document produces a failed verdict."""
    (tmp_path / 'ok.tk.yaml').write_text(PASSING, encoding='utf-8')

    summary = run(run_paths(
        [tmp_path / 'ok.tk.yaml', tmp_path / 'gone.tk.yaml'],
        settings=RunnerSettings(),
        executor=executor,
    ))

    ok, gone = summary.verdicts

    assert ok.passed is True
    assert gone.state is RunState.FAILED
    assert gone.diagnostic is not None
    assert gone.diagnostic.startswith('Can not read test document')


def test_run_directory_empty(tmp_path: Path, executor: 'RequestExecutor') -> None:
    """An empty directory trivially passes."""
    summary = run(run_directory(tmp_path, settings=RunnerSettings(), executor=executor))

    assert summary.total == 0
    assert summary.ok is True
    assert summary.exit_code == 0


@pytest.mark.parametrize('states, expected', (
    pytest.param((), 0, id='empty'),
    pytest.param((RunState.COMPLETED, RunState.COMPLETED), 0, id='all passed'),
    pytest.param((RunState.COMPLETED, RunState.FAILED), 1, id='one failed'),
    pytest.param((RunState.CANCELLED,), 1, id='cancelled'),
))
def test_summary_exit_code(states: tuple[RunState, ...], expected: int) -> None:
    """The invocation fails if any document did not pass."""
    summary = RunSummary(verdicts=tuple(
        FileVerdict(file=f'{index}.tk.yaml', state=state)
        for index, state in enumerate(states)
    ))

    assert summary.exit_code == expected
    assert summary.total == len(states)
