"""Test document discovery and loading.

Discovery and loading are separate phases: `discover` only lists
candidate files, `load_context` reads one of them and builds a fresh
`TestContext`. Neither parses the document.
"""

from logging import getLogger
from pathlib import Path

from testkit.context import TestContext
from testkit.errors import ParseError
from testkit.names import DOCUMENT_PATTERN

logger = getLogger(__name__)


def is_document(path: Path) -> bool:
    """Check whether a path names a test document.

    Test documents have a `.yaml` or `.yml` extension and a file stem
    carrying the `.tk` marker, e.g. `users.tk.yaml`.
    """
    return DOCUMENT_PATTERN.match(path.name) is not None


def discover(root: Path) -> list[Path]:
    """Find every test document under a directory.

    Args:
        root: Directory to scan recursively.

    Returns:
        Sorted list of test document paths.
    """
    found = sorted(
        path
        for path in Path(root).rglob('*')
        if path.is_file() and is_document(path)
    )
    logger.debug('Discovered %d test documents under %s', len(found), root)

    return found


def load_context(path: Path | str) -> TestContext:
    """Read a test document and build its execution context.

    Args:
        path: Path of the test document.

    Returns:
        A fresh context holding the raw document text.

    Raises:
        ParseError: If the file can not be read or decoded.
    """
    path = Path(path)
    try:
        source = path.read_text(encoding='utf-8')

    except (OSError, UnicodeDecodeError) as base:
        raise ParseError(
            f'Can not read test document: {base}',
            context={'filename': str(path)},
        ) from base

    return TestContext(str(path), source)
