"""Executable plan of a test document.

A plan is the ordered sequence of steps parsed from one document,
together with the optional document header: title, initial variables,
declared environment inputs and free-form metadata.
"""

from pydantic import Field

from testkit.models import DescribedMixin, SchemaModel
from testkit.names import Variable  # noqa: TC001
from testkit.values import Value  # noqa: TC001

from .inputs import EnvironmentMixin
from .steps import Step  # noqa: TC001

#: Keys recognised at the top level of a mapping document.
HEADER_KEYS = frozenset({
    'title',
    'description',
    'vars',
    'envs',
    'metadata',
    'steps',
})


class Plan(EnvironmentMixin, DescribedMixin, SchemaModel):
    """Ordered, immutable sequence of steps.

    Step order is execution order. Later steps may depend on values
    captured by earlier ones, so steps are never reordered.
    """

    variables: dict[Variable, Value] = Field(
        default_factory=dict,
        validation_alias='vars',
        title='Initial variables',
        description=(
            'Variables available to every step. Values may reference '
            'earlier variables and `envs` through placeholders.'
        ),
    )

    metadata: dict[Variable, Value] = Field(
        default_factory=dict,
        title='Metadata',
        description='Additional metadata associated with the document.',
    )

    steps: tuple[Step, ...] = Field(
        default=(),
        title='Steps',
        description='Ordered steps of the document.',
    )
