"""Core exception hierarchy.

This module defines the error and warning types used across the runner
to report malformed test documents, unresolvable placeholders, request
dispatch failures, expectation mismatches and cooperative cancellation
in a structured way.

Every error carries an optional `ErrorContext` which the formatter turns
into a location line (file, line, column, step, assertion) followed by a
YAML snippet of the failing element.
"""

from os import linesep
from typing import TYPE_CHECKING, Any, TypedDict

from pydantic import SecretStr
from yaml import dump
from yaml.error import MarkedYAMLError

from testkit.values import MAPPINGS, SCALARS, SEQUENCES

if TYPE_CHECKING:
    from typing import Self

if TYPE_CHECKING:
    from pydantic_core import ErrorDetails, ValidationError
    from yaml.nodes import Node

if TYPE_CHECKING:
    from testkit.core.verdicts import AssertionResult

SNIPPET_ELLIPSIS = f' ...{linesep}'
SNIPPET_SEPARATOR = f' ---{linesep}'
SNIPPET_INDENT = 2

FORMAT_REPLACER = '<runtime object>'
FORMAT_SECRET = '**********'
FORMAT_FILENAME = '<unicode string>'
FORMAT_INDENT = 4


class ErrorContext(TypedDict, total=False):
    """Container describing contextual information for error formatting.

    All fields are optional; the formatter adapts output based on
    provided values.
    """

    #: Identifier of the test document where the error occurred.
    filename: str | None

    #: Line number in the source document (zero-based).
    line_num: int | None
    #: Column number in the source document (zero-based).
    column_num: int | None
    #: Dotted key path of the offending field.
    key: str | None

    #: Index of the step where the error occurred (zero-based).
    step_num: int | None
    #: Index of the assertion within a step (zero-based).
    check_num: int | None

    #: Underlying exception that triggered formatting.
    error: Exception | None

    #: Variable table available at the moment of failure.
    context: dict[str, Any] | None
    #: Document element associated with the error.
    element: Any


class ErrorFormatter:
    """Utility class for formatting runner errors.

    Produces human-readable messages with an optional source location
    and a YAML snippet describing the failing element.
    """

    @classmethod
    def format(cls, message: str, context: ErrorContext | None = None) -> str:
        """Format an error message using contextual information.

        Args:
            message: Base human-readable error message.
            context: Optional error context with location and data.

        Returns:
            A fully formatted error message suitable for display.
        """
        if not context:
            return message

        message += linesep
        message += cls.get_location_string(context, indent=FORMAT_INDENT)
        message += cls.get_snippet_string(context, indent=FORMAT_INDENT * 2)

        return message

    @classmethod
    def get_location_string(cls, context: ErrorContext, *,
                            indent: str | int | None = None) -> str:
        """Format source and execution location information.

        Args:
            context: Error context containing location metadata.
            indent: Optional indentation (string or number of spaces).

        Returns:
            A formatted location string including file, line, column,
            key, step and assertion numbers when available.
        """
        indent = cls._ensure_indent(indent)

        filename = context.get('filename')
        if not filename:
            filename = FORMAT_FILENAME

        message = f'{indent}in "{filename}"'
        if (line_num := context.get('line_num')) is not None:
            line_num += 1
            message += f', line {line_num}'
            if (column_num := context.get('column_num')) is not None:
                column_num += 1
                message += f', column {column_num}'
        if key := context.get('key'):
            message += f', key "{key}"'
        message += linesep

        if (step_num := context.get('step_num')) is not None:
            step_num += 1
            message += f'{indent}on step {step_num}'
            if (check_num := context.get('check_num')) is not None:
                check_num += 1
                message += f', assertion {check_num}'
            message += linesep

        return message

    @classmethod
    def get_snippet_string(cls, context: ErrorContext, *,
                           indent: str | int | None = None) -> str:
        """Generate a formatted snippet illustrating the error context.

        Args:
            context: Error context containing element or exception data.
            indent: Optional indentation (string or number of spaces).

        Returns:
            A formatted multi-line snippet string, or an empty string
            if no snippet data is available.
        """
        indent = cls._ensure_indent(indent)

        if (error := context.get('error')) and isinstance(error, MarkedYAMLError):
            snippet = error.problem_mark.get_snippet(indent=0) if error.problem_mark else None
            return cls._make_indent(snippet or '', indent)

        if element := context.get('element'):
            return cls._make_snippet(element, context, indent)

        return ''

    @classmethod
    def _make_snippet(cls, element: Any,  # noqa: ANN401
                      context: ErrorContext, indent: str) -> str:
        """Build a YAML-based snippet for an element.

        Args:
            element: Element associated with the error.
            context: Error context containing optional runtime values.
            indent: String indentation prefix.

        Returns:
            A formatted snippet string including variables and element data.
        """
        snippet = f'{indent}{SNIPPET_ELLIPSIS}'

        if values := context.get('context'):
            snippet += cls._make_yaml({'vars': {**values}}, indent)
            snippet += linesep
            snippet += f'{indent}{SNIPPET_SEPARATOR}'

        snippet += cls._make_yaml(element, indent)
        snippet += linesep

        return snippet

    @classmethod
    def _filter_unsafe(cls, value: Any) -> Any:  # noqa: ANN401
        """Recursively sanitize values for safe YAML serialization.

        Secrets are masked and opaque objects are replaced with
        a placeholder.

        Args:
            value: Arbitrary value to sanitize.

        Returns:
            A YAML-safe representation of the value.
        """
        if isinstance(value, SecretStr):
            return FORMAT_SECRET

        if value is None or isinstance(value, SCALARS):
            return value

        if isinstance(value, MAPPINGS):
            return {
                key: cls._filter_unsafe(item)
                for key, item in value.items()
            }

        if isinstance(value, SEQUENCES):
            return [
                cls._filter_unsafe(item)
                for item in value
            ]

        return FORMAT_REPLACER

    @classmethod
    def _make_yaml(cls, value: Any, indent: str = '') -> str:  # noqa: ANN401
        """Serialize a value to a YAML-formatted string.

        Args:
            value: Arbitrary value to serialize.
            indent: Optional indentation prefix.

        Returns:
            A YAML-formatted string representation of the value.
        """
        data = dump(
            cls._filter_unsafe(value),
            indent=SNIPPET_INDENT,
            sort_keys=False,
            allow_unicode=True,
        )

        return cls._make_indent(data, indent)

    @staticmethod
    def _make_indent(value: str, indent: str) -> str:
        """Apply indentation to a multi-line string, dropping blank lines."""
        if not indent:
            return value

        return linesep.join(
            f'{indent}{line}'
            for line in value.splitlines()
            if line.strip()
        )

    @staticmethod
    def _ensure_indent(indent: str | int | None = None) -> str:
        """Normalize indentation given as a string or a number of spaces."""
        if isinstance(indent, int) and indent > 0:
            return ' ' * indent

        if isinstance(indent, str):
            return indent

        return ''


class DocumentWarning(UserWarning):
    """Warning emitted for non-fatal test document issues.

    Used, for example, when a document header contains keys that
    the runner does not know, so newer documents stay loadable.
    """


class TestkitError(Exception, ErrorFormatter):
    """Base exception for all runner errors.

    All custom exceptions raised by the runner inherit from this
    class to allow unified error handling by callers.
    """

    __test__ = False

    #: Short machine-readable error kind used in verdicts.
    kind: str = 'error'

    def __init__(self, message: str, *,
                 context: ErrorContext | None = None) -> None:
        """Initialize an error.

        Args:
            message: Human-readable error description.
            context: Error context containing location and runtime values.
        """
        self.message = message
        self.context = context

        super().__init__(message)

    def __str__(self) -> str:
        """String representation."""
        return self.format(self.message, self.context)

    def with_context(self, **values: Any) -> 'Self':  # noqa: ANN401
        """Merge additional location data into the error context.

        Existing values win, so the innermost location is kept.

        Args:
            **values: `ErrorContext` fields to add.

        Returns:
            The same error instance.
        """
        self.context = ErrorContext(**{**values, **(self.context or {})})  # type: ignore[typeddict-item]
        return self


class ParseError(TestkitError):
    """Error raised when a test document is malformed.

    Always fatal for the document that produced it and never retried.
    """

    kind = 'parse'

    @classmethod
    def from_yaml_error(cls, error: MarkedYAMLError, *,
                        filename: str | None = None) -> 'Self':
        """Create a parse error from a YAML syntax failure.

        Args:
            error: Exception raised by the YAML parser.
            filename: Identifier of the parsed document.

        Returns:
            ParseError carrying the YAML problem position.
        """
        mark = error.problem_mark
        error_context = ErrorContext(
            filename=filename or (mark.name if mark else None),
            line_num=mark.line if mark else None,
            column_num=mark.column if mark else None,
            error=error,
        )

        message = 'Invalid YAML'
        if error.problem:
            message += f'{linesep}{' ' * FORMAT_INDENT}{error.problem}'

        return cls(message, context=error_context)

    @classmethod
    def from_yaml_node(cls, message: str, node: 'Node', *,
                       filename: str | None = None,
                       key: str | None = None,
                       step_num: int | None = None) -> 'Self':
        """Create a parse error pointing at a YAML node.

        Args:
            message: Human-readable error message.
            node: YAML node associated with the error.
            filename: Identifier of the parsed document.
            key: Dotted key path of the offending field.
            step_num: Index of the offending step.

        Returns:
            ParseError with the node position attached.
        """
        error_context = ErrorContext(
            filename=filename or node.start_mark.name,
            line_num=node.start_mark.line,
            column_num=node.start_mark.column,
            key=key,
            step_num=step_num,
        )

        return cls(message, context=error_context)

    @classmethod
    def from_pydantic_error(cls, error: 'ValidationError', *,  # noqa: PLR0913
                            data: Any = None,  # noqa: ANN401
                            filename: str | None = None,
                            line_num: int | None = None,
                            column_num: int | None = None,
                            step_num: int | None = None) -> 'Self':
        """Create a parse error from a pydantic validation failure.

        The first validation issue that can be located in the source
        data is reported together with the minimal failing fragment.

        Args:
            error: ValidationError raised by pydantic.
            data: Validated element data.
            filename: Identifier of the parsed document.
            line_num: Line of the validated element, if known.
            column_num: Column of the validated element, if known.
            step_num: Index of the offending step.

        Returns:
            ParseError representing the validation failure.
        """
        error_context = ErrorContext(
            filename=filename,
            line_num=line_num,
            column_num=column_num,
            step_num=step_num,
            error=error,
            element=data,
        )

        if not data or not isinstance(data, dict):
            return cls('Type validation error', context=error_context)

        for item in error.errors(include_url=False, include_input=False):
            if located := cls._locate_pydantic_context(data, item):
                message, key, value = located
                return cls(message, context=ErrorContext({
                    **error_context,
                    'key': key,
                    'element': value,
                }))

        return cls('Validation error', context=error_context)

    @classmethod
    def _locate_pydantic_context(cls, value: Any,  # noqa: ANN401
                                 error: 'ErrorDetails') -> tuple[str, str, Any] | None:
        """Locate the most specific failing element in validated data.

        Walks the pydantic error location path and extracts the minimal
        substructure responsible for the failure.

        Args:
            value: Root data structure being validated.
            error: Pydantic error details including location path.

        Returns:
            A tuple of (error message, dotted key path, extracted element)
            if a relevant context can be located, otherwise None.
        """
        container = last_item = value
        last_key: int | str | None = None
        path: list[str] = []

        for key in error['loc']:
            if isinstance(last_item, (list, tuple)):
                if isinstance(key, int) and 0 <= key < len(last_item):
                    container = last_item
                    last_item = last_item[key]
                    last_key = key
                    path.append(str(key))
            elif isinstance(last_item, dict):
                if key in last_item:
                    container = last_item
                    last_item = last_item[key]
                    last_key = key
                    path.append(str(key))
                elif isinstance(key, str) and error['type'] == 'missing':
                    path.append(key)
            else:
                return None

        message = None
        for item in (error.get('msg') or '').splitlines():
            if item_message := item.strip():
                message = item_message
                break

        if not message:
            return None

        key_path = '.'.join(path)
        if last_key is None:
            if error['loc'] and error['type'] != 'missing':
                return None
            return message, key_path, last_item

        if isinstance(container, (list, tuple)):
            return message, key_path, [last_item]

        return message, key_path, {last_key: last_item}


class ResolutionError(TestkitError):
    """Error raised when a placeholder cannot be resolved.

    Raised for unbound variables without a fallback and for
    placeholders still present after the maximum substitution depth.
    """

    kind = 'resolution'

    def __init__(self, message: str, *, placeholder: str,
                 context: ErrorContext | None = None) -> None:
        """Initialize a resolution error.

        Args:
            message: Human-readable error description.
            placeholder: Name of the unresolved variable or placeholder.
            context: Error context.
        """
        self.placeholder = placeholder

        super().__init__(message, context=context)


class RequestError(TestkitError):
    """Error raised when a resolved request can not be sent.

    Covers requests the HTTP client refuses to build: malformed URLs,
    header values that are not ASCII and bodies that can not be
    encoded. Never retried.
    """

    kind = 'request'

    def __init__(self, message: str, *, method: str, url: str,
                 context: ErrorContext | None = None) -> None:
        """Initialize a request error.

        Args:
            message: Human-readable error description.
            method: HTTP method of the failed request.
            url: Target URL of the failed request.
            context: Error context.
        """
        self.method = method
        self.url = url

        super().__init__(message, context=context)


class TransportError(RequestError):
    """Error raised when a request could not be dispatched.

    Covers connection failures, timeouts, DNS, TLS and protocol
    errors. There is no response to evaluate assertions against.
    """

    kind = 'transport'


class AssertionFailure(TestkitError):
    """Error describing expected-versus-actual mismatches of a step.

    Never fatal by default: the orchestrator records it and moves on.
    It is raised only when fail-fast behaviour is configured.
    """

    kind = 'assertion'

    def __init__(self, message: str, *,
                 results: 'tuple[AssertionResult, ...]' = (),
                 context: ErrorContext | None = None) -> None:
        """Initialize an assertion failure.

        Args:
            message: Human-readable error description.
            results: Failed assertion results.
            context: Error context.
        """
        self.results = results

        super().__init__(message, context=context)


class CancellationError(TestkitError):
    """Error raised when a run is cancelled between steps."""

    kind = 'cancelled'
