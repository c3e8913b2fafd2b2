"""Pytest plugin collecting test documents.

Files named `*.tk.yaml` or `*.tk.yml` are collected as test documents,
each one producing a single test item that runs the whole document.

The plugin registers command-line options overriding the runner
settings and attaches a shared `DocumentParser` and the resolved
`RunnerSettings` to the pytest configuration.
"""

from typing import TYPE_CHECKING

from testkit.names import DOCUMENT_PATTERN

from .spec import TestDocument

if TYPE_CHECKING:
    from pathlib import Path

if TYPE_CHECKING:
    from _pytest.config import Config
    from _pytest.config.argparsing import Parser
    from _pytest.nodes import Node


def pytest_addoption(parser: 'Parser') -> None:
    """Register pytest command-line options for test documents.

    Args:
        parser: Pytest argument parser.
    """
    group = parser.getgroup('testkit', 'YAML API test documents')
    group.addoption(
        '--tk-timeout',
        action='store',
        type=float,
        dest='tk_timeout',
        default=None,
        help='Default request timeout in seconds for test documents.',
    )
    group.addoption(
        '--tk-fail-fast',
        action='store_true',
        dest='tk_fail_fast',
        default=False,
        help='Stop a test document at its first failing step.',
    )


def pytest_configure(config: 'Config') -> None:
    """Configure the test document integration.

    Attaches `config.testkit_parser` and `config.testkit_settings`.

    Args:
        config: Pytest configuration object.
    """
    from testkit.core.parser import DocumentParser  # noqa: PLC0415
    from testkit.settings import RunnerSettings  # noqa: PLC0415

    overrides = {}
    if (timeout := config.getoption('tk_timeout', default=None)) is not None:
        overrides['timeout'] = timeout
    if config.getoption('tk_fail_fast', default=False):
        overrides['fail_fast'] = True

    config.testkit_parser = DocumentParser()  # type: ignore[attr-defined]
    config.testkit_settings = RunnerSettings(**overrides)  # type: ignore[attr-defined]


def pytest_collect_file(parent: 'Node', file_path: 'Path') -> TestDocument | None:
    """Collect test document files.

    Args:
        parent: Parent pytest collection node.
        file_path: Path to the file being considered.

    Returns:
        A `TestDocument` collector if the file is a test document,
        otherwise `None`.
    """
    if DOCUMENT_PATTERN.match(file_path.name):
        return TestDocument.from_parent(
            parent,
            path=file_path,
        )

    return None
