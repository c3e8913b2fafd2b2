"""Assertion definitions of test steps.

An assertion selects one target of the captured response and compares
it with an expected value using exactly one comparator.

Targets:
    - `status`: the response status code;
    - `header`: a response header, by case-insensitive name;
    - `body`: a fragment of the decoded body, by path expression
      (`data.items.0.id` or `$.data.items[0].id`);
    - `time`: the elapsed request time in milliseconds.

Shorthand forms accepted in documents:
    - `status: 200` compares the status code for equality;
    - `status: {lt: 300}` applies the given comparator to the status code;
    - `time: 500` requires the request to finish within 500 ms;
    - `header: Name` or `body: path` without a comparator checks presence.
"""

from typing import Any, Literal, Self

from pydantic import AliasChoices, Field, model_validator

from testkit.models import DescribedMixin, SchemaModel
from testkit.values import Value  # noqa: TC001

type Target = Literal['status', 'header', 'body', 'time']

#: Comparator field names mapped to the aliases accepted in documents.
COMPARATORS: dict[str, tuple[str, ...]] = {
    'match': ('eq', 'equal'),
    'not_match': ('notMatch', 'ne', 'notEqual'),
    'less_than': ('lt', 'lessThan'),
    'less_than_or_equal': ('lte', 'lessThanOrEqual'),
    'greater_than': ('gt', 'greaterThan'),
    'greater_than_or_equal': ('gte', 'greaterThanOrEqual'),
    'regex': ('reMatch', 'regexMatch'),
    'contains': ('has',),
    'exists': ('present',),
}

#: Every key that selects a comparator, including aliases.
COMPARATOR_KEYS = frozenset(
    key
    for name, aliases in COMPARATORS.items()
    for key in (name, *aliases)
)


def _comparator_field(name: str, title: str, description: str) -> Any:  # noqa: ANN401
    """Build a comparator field accepting its document aliases."""
    return Field(
        default=None,
        validation_alias=AliasChoices(name, *COMPARATORS[name]),
        title=title,
        description=description,
    )


class Assertion(DescribedMixin, SchemaModel):
    """A single expectation about a captured response."""

    target: Target = Field(
        title='Assertion target',
        description='Part of the response to check.',
    )

    path: str | None = Field(
        default=None,
        title='Target path',
        description=(
            'Header name for `header` targets or path expression '
            'for `body` targets.'
        ),
    )

    match: Value = _comparator_field(
        'match', 'Expected value',
        'Target must be equal to this value.',
    )
    not_match: Value = _comparator_field(
        'not_match', 'Forbidden value',
        'Target must not be equal to this value.',
    )
    less_than: Value = _comparator_field(
        'less_than', 'Upper bound',
        'Target must be less than this value.',
    )
    less_than_or_equal: Value = _comparator_field(
        'less_than_or_equal', 'Upper bound (inclusive)',
        'Target must be less than or equal to this value.',
    )
    greater_than: Value = _comparator_field(
        'greater_than', 'Lower bound',
        'Target must be greater than this value.',
    )
    greater_than_or_equal: Value = _comparator_field(
        'greater_than_or_equal', 'Lower bound (inclusive)',
        'Target must be greater than or equal to this value.',
    )
    regex: Value = _comparator_field(
        'regex', 'Regex pattern',
        'Target must contain a match of this pattern.',
    )
    contains: Value = _comparator_field(
        'contains', 'Contained value',
        'Target string, list or mapping must contain this value.',
    )
    exists: bool | None = _comparator_field(
        'exists', 'Presence flag',
        'If true the target must be present, if false it must be absent.',
    )

    partial_match: bool = Field(
        default=False,
        validation_alias=AliasChoices('partial_match', 'partialMatch'),
        title='Partial comparison mode',
        description=(
            'If true, `match` and `not_match` perform recursive partial '
            'matching instead of strict equality comparison.'
        ),
    )
    ignore_case: bool = Field(
        default=False,
        validation_alias=AliasChoices('ignore_case', 'ignoreCase'),
        title='Ignore case mode',
        description='If true, `regex` performs case-insensitive matching.',
    )
    multiline: bool = Field(
        default=False,
        title='Multiline mode',
        description='If true, `regex` performs multiline matching.',
    )

    @model_validator(mode='before')
    @classmethod
    def expand_shorthand(cls, data: Any) -> Any:  # noqa: ANN401
        """Translate target shorthand keys into the canonical form.

        Args:
            data: Raw assertion mapping.

        Returns:
            Mapping with `target`, `path` and a comparator.

        Raises:
            ValueError: If several targets are given at once.
        """
        if not isinstance(data, dict):
            return data

        targets = [key for key in ('status', 'header', 'body', 'time') if key in data]
        if not targets:
            return data
        if len(targets) > 1 or 'target' in data:
            raise ValueError(f'Assertion must select exactly one target, got {', '.join(targets)}')

        target = targets[0]
        values = {key: item for key, item in data.items() if key != target}
        selector = data[target]
        has_comparator = bool(COMPARATOR_KEYS.intersection(values))

        match target:
            case 'status' | 'time' if isinstance(selector, dict):
                values.update(selector)
            case 'status' if not has_comparator:
                values['match'] = selector
            case 'time' if not has_comparator:
                values['less_than_or_equal'] = selector
            case 'status' | 'time':
                raise ValueError(f'Shorthand `{target}` value can not be combined with a comparator')
            case _:
                values['path'] = selector
                if not has_comparator:
                    values['exists'] = True

        return {'target': target, **values}

    @model_validator(mode='after')
    def check_comparator(self) -> Self:
        """Require exactly one comparator and a path where needed.

        Returns:
            Self.

        Raises:
            ValueError: If the comparator or the path is inconsistent.
        """
        comparators = self.comparators()
        if len(comparators) != 1:
            raise ValueError(f'Assertion must use exactly one comparator, got {len(comparators)}')

        if self.target == 'header' and not self.path:
            raise ValueError('Header assertion requires a header name')

        if self.target in ('status', 'time') and self.path is not None:
            raise ValueError(f'Target `{self.target}` does not accept a path')

        return self

    def comparators(self) -> list[str]:
        """Return the names of explicitly set comparators."""
        return [
            name
            for name in COMPARATORS
            if name in self.model_fields_set
        ]

    def operation(self) -> tuple[str, Value]:
        """Return the comparator name and its expected value."""
        name = self.comparators()[0]
        return name, getattr(self, name)

    @property
    def label(self) -> str:
        """Human-readable target description, e.g. `body data.id`."""
        if self.path is None:
            return self.target

        return f'{self.target} {self.path}'
