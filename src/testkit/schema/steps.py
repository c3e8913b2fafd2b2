"""Step definitions of test documents.

A step is one request together with the assertions evaluated against
its response and the capture directives that extract values from the
response for later steps.

Besides the explicit `request:` block, a step may use the method
shorthand, in which the method is the key and the URL its value:

    - name: List todos
      GET: ${baseUrl}/todos
      headers:
        Accept: application/json
"""

from typing import Annotated, Any

from pydantic import AliasChoices, Field, model_validator

from testkit.models import DescribedMixin, SchemaModel
from testkit.names import METHODS, Variable

from .checks import Assertion  # noqa: TC001
from .requests import RequestSpec

#: Request keys that may appear next to a method shorthand.
SHORTHAND_KEYS = ('headers', 'params', 'query', 'body', 'json', 'form')

#: Capture source expression: `status`, `time`, `headers.<name>`,
#: `body` or `body.<path>` / `body[<index>]...`.
CaptureSource = Annotated[
    str, Field(
        pattern=r'^(status|time|headers\.\S+|body([.\[]\S*)?)$',
        title='Capture source',
        description=(
            'Response fragment to capture: `status`, `time`, '
            '`headers.<name>`, `body` or `body.<path>`.'
        ),
        examples=[
            'body.data.id',
            'headers.ETag',
            'status',
        ],
    ),
]


class Retry(SchemaModel):
    """Retry directive of a step.

    The step is executed again while it fails with a transport error
    or a failing assertion, up to `attempts` executions in total.
    """

    attempts: int = Field(
        default=1,
        ge=1,
        le=100,
        title='Attempts',
        description='Maximum number of executions of the step.',
    )

    delay: float = Field(
        default=0.0,
        ge=0,
        title='Delay',
        description='Pause between attempts, in seconds.',
    )


class Step(DescribedMixin, SchemaModel):
    """Executable step of a test document."""

    name: str | None = Field(
        default=None,
        title='Step name',
        description='Name of the step used in reports.',
    )

    request: RequestSpec = Field(
        title='Request',
        description='Request dispatched by the step.',
    )

    assertions: list[Assertion] = Field(
        default_factory=list,
        validation_alias=AliasChoices('assert', 'asserts', 'assertions'),
        title='Assertions',
        description=(
            'Expectations evaluated against the response. All assertions '
            'are evaluated, the step passes if every one of them passes.'
        ),
    )

    capture: dict[Variable, CaptureSource] = Field(
        default_factory=dict,
        validation_alias=AliasChoices('capture', 'exports'),
        title='Captures',
        description=(
            'Variables extracted from the response after the assertions. '
            'They are visible to subsequent steps only.'
        ),
    )

    optional: bool = Field(
        default=False,
        title='Optional step',
        description=(
            'If true, a transport failure of this step does not stop '
            'the remaining steps of the document.'
        ),
    )

    timeout: float | None = Field(
        default=None,
        gt=0,
        title='Timeout',
        description='Request timeout in seconds, overriding the global default.',
    )

    retry: Retry | None = Field(
        default=None,
        title='Retry directive',
        description='Re-execute the step while it fails.',
    )

    @model_validator(mode='before')
    @classmethod
    def expand_method_shorthand(cls, data: Any) -> Any:  # noqa: ANN401
        """Build the `request` block from a method shorthand key.

        Args:
            data: Raw step mapping.

        Returns:
            Mapping with an explicit `request` block.

        Raises:
            ValueError: If several methods or both forms are used.
        """
        if not isinstance(data, dict):
            return data

        methods = [key for key in data if isinstance(key, str) and key.upper() in METHODS]
        if not methods:
            return data
        if len(methods) > 1:
            raise ValueError(f'Step must declare exactly one method, got {', '.join(methods)}')
        if 'request' in data:
            raise ValueError('Method shorthand can not be combined with a request block')

        method = methods[0]
        request = {'method': method, 'url': data[method]}
        values = {}
        for key, item in data.items():
            if key == method:
                continue
            if key in SHORTHAND_KEYS:
                request[key] = item
            else:
                values[key] = item

        return {**values, 'request': request}

    @property
    def label(self) -> str:
        """Human-readable step name."""
        return self.name or self.title or f'{self.request.method} {self.request.url}'
