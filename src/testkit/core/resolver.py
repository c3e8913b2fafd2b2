"""Placeholder substitution against a variable table.

Placeholders use a single canonical form, `${path}`, where `path` is a
variable name optionally followed by a path into its value
(`${login.token}`, `${items.0.id}`, `${envs.API_TOKEN}`). A fallback may
be given as `${name:-default}`.

Innermost placeholders are substituted first and the text is scanned
again, so nested placeholders (`${user_${env}}`) and variables whose
values contain placeholders are both resolved. Scanning stops after
`MAX_DEPTH` passes.

A string consisting of exactly one placeholder resolves to the bound
value itself, which keeps numbers and structured values intact. In any
other position the value is converted to text.
"""

from json import dumps
from typing import TYPE_CHECKING

from pydantic import SecretStr

from testkit.errors import ResolutionError
from testkit.names import PLACEHOLDER_PATTERN, VARIABLE_PATTERN
from testkit.values import MAPPINGS, SEQUENCES

from .lookups import MISSING, PathLookup, split_path
from .verdicts import RequestSnapshot

if TYPE_CHECKING:
    from collections.abc import Mapping
    from re import Match

if TYPE_CHECKING:
    from testkit.schema import Assertion, RequestSpec
    from testkit.values import Value

#: Maximum number of substitution passes over one string.
MAX_DEPTH = 10


def stringify(value: 'Value') -> str:
    """Convert a resolved value into placeholder text.

    Args:
        value: Bound value.

    Returns:
        Strings as is, secrets unwrapped, `None`, booleans and
        containers as JSON, anything else through `str`.
    """
    if isinstance(value, str):
        return value

    if isinstance(value, SecretStr):
        return value.get_secret_value()

    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')

    if value is None or isinstance(value, (bool, *MAPPINGS, *SEQUENCES)):
        return dumps(value, ensure_ascii=False, default=str)

    return str(value)


class VariableResolver:
    """Resolver of `${...}` placeholders.

    The resolver reads from the mapping it was created with and never
    modifies it.
    """

    def __init__(self, variables: 'Mapping[str, Value]', *,
                 max_depth: int = MAX_DEPTH) -> None:
        """Initialize the resolver.

        Args:
            variables: Variable table to resolve placeholders against.
            max_depth: Maximum number of substitution passes per string.
        """
        self.variables = variables
        self.max_depth = max_depth

    def lookup(self, path: str, fallback: str | None = None) -> 'Value':
        """Return the value bound to a placeholder path.

        Args:
            path: Placeholder body without the fallback part.
            fallback: Text used when the path is not bound.

        Returns:
            The bound value, or the fallback text.

        Raises:
            ResolutionError: If the path is invalid, or unbound and
                no fallback is given.
        """
        path = path.strip()
        segments = split_path(path)
        if not segments or not VARIABLE_PATTERN.match(segments[0]):
            raise ResolutionError(f'Invalid placeholder "${{{path}}}"', placeholder=path)

        value = PathLookup(path).resolve(self.variables)
        if value is not MISSING:
            return value

        if fallback is not None:
            return fallback

        raise ResolutionError(f'Variable "{path}" is not defined', placeholder=path)

    def _substitute(self, found: 'Match[str]') -> str:
        """Substitute one embedded placeholder occurrence."""
        return stringify(self.lookup(found['path'], found['fallback']))

    def resolve_string(self, text: str) -> 'Value':
        """Resolve every placeholder of a string.

        Args:
            text: String possibly containing placeholders.

        Returns:
            Resolved string, or the bound value when the whole string is
            a single placeholder bound to a non-string value.

        Raises:
            ResolutionError: If a placeholder is unbound or still present
                after the maximum number of passes.
        """
        for _ in range(self.max_depth):
            if not PLACEHOLDER_PATTERN.search(text):
                return text

            if whole := PLACEHOLDER_PATTERN.fullmatch(text):
                value = self.lookup(whole['path'], whole['fallback'])
                if isinstance(value, SecretStr):
                    return value.get_secret_value()
                if not isinstance(value, str):
                    return value
                text = value
                continue

            text = PLACEHOLDER_PATTERN.sub(self._substitute, text)

        if found := PLACEHOLDER_PATTERN.search(text):
            placeholder = found['path'].strip()
            raise ResolutionError(
                f'Placeholder "${{{placeholder}}}" is not resolved after {self.max_depth} passes',
                placeholder=placeholder,
            )

        return text

    def resolve(self, value: 'Value') -> 'Value':
        """Recursively resolve placeholders inside a value.

        Mapping keys are left untouched; only values are resolved.

        Args:
            value: Value to resolve.

        Returns:
            A new value with every placeholder substituted.
        """
        if isinstance(value, str):
            return self.resolve_string(value)

        if isinstance(value, MAPPINGS):
            return {
                key: self.resolve(item)
                for key, item in value.items()
            }

        if isinstance(value, SEQUENCES):
            return [
                self.resolve(item)
                for item in value
            ]

        return value

    def resolve_request(self, request: 'RequestSpec') -> RequestSnapshot:
        """Resolve a request description.

        Fields are resolved in a fixed order: headers, URL, query
        parameters, then the body.

        Args:
            request: Unresolved request description.

        Returns:
            Fully resolved request snapshot.
        """
        headers = {
            name: stringify(self.resolve(value))
            for name, value in request.headers.items()
        }
        url = stringify(self.resolve(request.url))
        params = self.resolve(request.params)
        body = self.resolve(request.body)
        json_body = self.resolve(request.json_body)
        form = self.resolve(request.form)

        return RequestSnapshot(
            method=request.method,
            url=url,
            headers=headers,
            params=params,
            body=body,
            json_body=json_body,
            form=form,
        )

    def resolve_assertion(self, assertion: 'Assertion') -> 'Assertion':
        """Resolve placeholders inside an assertion.

        Args:
            assertion: Unresolved assertion.

        Returns:
            A new assertion with resolved path and expected value.
        """
        data = assertion.model_dump(exclude_unset=True)
        return type(assertion).model_validate(self.resolve(data))

    def with_request(self, request: RequestSnapshot) -> 'VariableResolver':
        """Return a resolver that also exposes the resolved request.

        The request is available to assertions as `${request.url}`,
        `${request.method}`, `${request.headers.<name>}` and so on.

        Args:
            request: Resolved request of the current step.

        Returns:
            A new resolver over the extended variable table.
        """
        return VariableResolver(
            {**self.variables, 'request': request.model_dump()},
            max_depth=self.max_depth,
        )
