"""Name primitives and validation rules.

Defines the identifier patterns for variables and capture names, the
placeholder syntax used inside test documents, and the file naming
convention for test documents.
"""

from re import ASCII
from re import compile as regexp
from typing import Annotated

from pydantic import Field

#: Base pattern for all identifiers.
#: Identifiers must start with a letter and may contain letters, digits, or underscores.
_NAME_PATTERN = r'[a-zA-Z][\w]*'

#: Compiled pattern for variable identifiers.
VARIABLE_PATTERN = regexp(
    rf'^(?P<name>{_NAME_PATTERN})$',
    flags=ASCII,
)

#: Innermost placeholder occurrence: `${path}` or `${path:-fallback}`.
#: The body must not contain another `${`, so nested placeholders are
#: substituted from the inside out.
PLACEHOLDER_PATTERN = regexp(
    r'\$\{(?P<path>[^${}:]*?)(?::-(?P<fallback>[^${}]*))?\}',
)

#: Test document file names: the stem carries a `.tk` marker segment.
DOCUMENT_PATTERN = regexp(r'^.+\.tk\.ya?ml$')

#: HTTP methods accepted in requests and as step shorthand keys.
METHODS = ('GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'HEAD', 'OPTIONS')


Variable = Annotated[
    str, Field(
        pattern=rf'^{_NAME_PATTERN}$',
        title='Variable identifier',
        description=(
            'Name of a variable used to store or reference values within '
            'a test document run. '
            'Variable identifiers must start with a letter and may contain '
            'letters, digits, or underscores. '
            'Names are restricted to ASCII characters.'
        ),
        examples=[
            'userId',
            'api_token',
            'baseUrl',
        ],
    ),
]
