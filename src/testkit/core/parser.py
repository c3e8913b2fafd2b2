"""YAML test document parser.

The parser turns the raw text of a test document into an executable
`Plan`. It performs no I/O and no placeholder substitution: the same
text always yields an equal plan.

A document is a single YAML document which is either a list of steps
or a mapping with an optional header (`title`, `description`, `vars`,
`envs`, `metadata`) and a `steps` list.
"""

from logging import getLogger
from typing import TYPE_CHECKING
from warnings import warn

from pydantic import ValidationError
from yaml import SafeLoader
from yaml.error import MarkedYAMLError
from yaml.nodes import MappingNode, SequenceNode

from testkit.errors import DocumentWarning, ParseError
from testkit.schema import HEADER_KEYS, Plan, Step

if TYPE_CHECKING:
    from typing import Any

if TYPE_CHECKING:
    from yaml import BaseLoader
    from yaml.nodes import Node

logger = getLogger(__name__)


class DocumentParser:
    """Parser of YAML test documents into plans.

    Validation is performed step by step, so a validation failure is
    reported with the index of the offending step and, where it can be
    located, the line and column of the offending key.
    """

    def __init__(self, loader: type['BaseLoader'] = SafeLoader) -> None:
        """Initialize the parser.

        Args:
            loader: YAML loader class. Must not construct arbitrary
                Python objects.
        """
        self.loader = loader

    def load(self, content: str, *,
             filename: str | None = None) -> tuple['Node | None', 'Any']:
        """Load a single YAML document keeping its node tree.

        Args:
            content: Raw document text.
            filename: Identifier of the document used in error marks.

        Returns:
            The root node and the constructed data, or `(None, None)`
            for an empty document.

        Raises:
            ParseError: On YAML syntax errors or multiple documents.
        """
        loader = self.loader(content)
        if filename:
            loader.name = filename

        try:
            node = loader.get_single_node()
            if node is None:
                return None, None
            return node, loader.construct_document(node)

        except MarkedYAMLError as base:
            raise ParseError.from_yaml_error(base, filename=filename) from base

        finally:
            loader.dispose()

    def parse(self, content: str, *, filename: str | None = None) -> Plan:
        """Parse a test document into a plan.

        Args:
            content: Raw document text.
            filename: Identifier of the document used in diagnostics.

        Returns:
            Validated executable plan. An empty document yields an
            empty plan.

        Raises:
            ParseError: If the document is malformed.
        """
        node, data = self.load(content, filename=filename)
        if node is None or data is None:
            return Plan()

        header: dict[str, Any] = {}
        steps_node: Node = node
        steps_data = data

        if isinstance(data, dict):
            self.check_header_keys(data, filename=filename)
            header = {
                key: value
                for key, value in data.items()
                if key in HEADER_KEYS and key != 'steps'
            }
            steps_data = data.get('steps') or []
            steps_node = self.find_node(node, ['steps']) or node

        if not isinstance(steps_data, list):
            raise ParseError.from_yaml_node(
                'Document steps must be a list',
                steps_node,
                filename=filename,
                key='steps',
            )

        plan = self.parse_header(header, node, filename=filename)
        steps = tuple(
            self.parse_step(position, item, steps_node, filename=filename)
            for position, item in enumerate(steps_data)
        )

        return plan.model_copy(update={'steps': steps})

    def parse_header(self, header: dict[str, 'Any'], node: 'Node', *,
                     filename: str | None = None) -> Plan:
        """Validate the document header.

        Args:
            header: Header mapping without steps.
            node: Root node of the document.
            filename: Identifier of the document.

        Returns:
            Plan without steps.

        Raises:
            ParseError: If the header is invalid.
        """
        try:
            return Plan.model_validate(header)

        except ValidationError as base:
            error = ParseError.from_pydantic_error(
                base,
                data=header,
                filename=filename,
                line_num=node.start_mark.line,
                column_num=node.start_mark.column,
            )
            raise self.refine_location(error, node) from base

    def parse_step(self, position: int, data: 'Any', node: 'Node', *,
                   filename: str | None = None) -> Step:
        """Validate a single step.

        Args:
            position: Index of the step in the document.
            data: Raw step data.
            node: Sequence node holding the steps.
            filename: Identifier of the document.

        Returns:
            Validated step.

        Raises:
            ParseError: If the step is invalid.
        """
        step_node = node
        if isinstance(node, SequenceNode) and position < len(node.value):
            step_node = node.value[position]

        try:
            return Step.model_validate(data)

        except ValidationError as base:
            error = ParseError.from_pydantic_error(
                base,
                data=data,
                filename=filename,
                line_num=step_node.start_mark.line,
                column_num=step_node.start_mark.column,
                step_num=position,
            )
            raise self.refine_location(error, step_node) from base

    @staticmethod
    def check_header_keys(data: dict[str, 'Any'], *,
                          filename: str | None = None) -> None:
        """Warn about unknown top-level keys of a mapping document."""
        unknown = [str(key) for key in data if key not in HEADER_KEYS]
        if not unknown:
            return

        message = f'Unknown document keys ignored: {', '.join(unknown)}'
        if filename:
            message += f' (in "{filename}")'

        logger.warning(message)
        warn(message, category=DocumentWarning, stacklevel=3)

    @classmethod
    def refine_location(cls, error: ParseError, node: 'Node') -> ParseError:
        """Point a validation error at the offending key, if found.

        Args:
            error: Error with a dotted `key` in its context.
            node: Node of the validated element.

        Returns:
            The same error with an updated line and column.
        """
        if not error.context or not (key := error.context.get('key')):
            return error

        if found := cls.find_node(node, key.split('.')):
            error.context['line_num'] = found.start_mark.line
            error.context['column_num'] = found.start_mark.column

        return error

    @staticmethod
    def find_node(node: 'Node', path: list[str]) -> 'Node | None':
        """Find the deepest node addressed by a key path.

        Args:
            node: Node to start from.
            path: Mapping keys and sequence indexes.

        Returns:
            The deepest node reached along the path, or `None` if the
            first segment does not match.
        """
        found = None
        for segment in path:
            if isinstance(node, MappingNode):
                for key_node, value_node in node.value:
                    if key_node.value == segment:
                        node = value_node
                        break
                else:
                    return found
            elif isinstance(node, SequenceNode) and segment.isdecimal():
                index = int(segment)
                if index >= len(node.value):
                    return found
                node = node.value[index]
            else:
                return found
            found = node

        return found
