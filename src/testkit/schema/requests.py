"""Request descriptions of test steps.

A request is declared with a method, a target URL, headers, query
parameters and at most one body representation. Any string inside it
may contain `${...}` placeholders, which are substituted right before
the request is dispatched.
"""

from typing import Literal, Self

from pydantic import AliasChoices, Field, field_validator, model_validator

from testkit.models import SchemaModel
from testkit.values import Value  # noqa: TC001

type Method = Literal['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'HEAD', 'OPTIONS']

#: Fields that may carry a request body; at most one is allowed.
BODY_FIELDS = ('body', 'json_body', 'form')


class RequestSpec(SchemaModel):
    """Unresolved request description."""

    method: Method = Field(
        title='HTTP method',
        description='HTTP method of the request.',
    )

    url: str = Field(
        min_length=1,
        validation_alias=AliasChoices('url', 'target'),
        title='Target URL',
        description='Absolute URL of the request. May contain placeholders.',
    )

    headers: dict[str, Value] = Field(
        default_factory=dict,
        title='Request headers',
        description='Header names and values. Values are sent as strings.',
    )

    params: dict[str, Value] = Field(
        default_factory=dict,
        validation_alias=AliasChoices('params', 'query'),
        title='Query parameters',
        description='Query string parameters appended to the URL.',
    )

    body: Value = Field(
        default=None,
        title='Raw body',
        description=(
            'Request body. Strings and bytes are sent as is, '
            'mappings and lists are encoded as JSON.'
        ),
    )

    json_body: Value = Field(
        default=None,
        validation_alias=AliasChoices('json', 'json_body'),
        title='JSON body',
        description='Request body encoded as JSON.',
    )

    form: dict[str, Value] | None = Field(
        default=None,
        title='Form body',
        description='Request body encoded as `application/x-www-form-urlencoded`.',
    )

    @field_validator('method', mode='before')
    @classmethod
    def normalize_method(cls, value: object) -> object:
        """Accept lower-case method names."""
        if isinstance(value, str):
            return value.upper()

        return value

    @model_validator(mode='after')
    def check_single_body(self) -> Self:
        """Reject requests declaring more than one body representation.

        Returns:
            Self.

        Raises:
            ValueError: If more than one of `body`, `json` and `form` is set.
        """
        declared = [
            name
            for name in BODY_FIELDS
            if getattr(self, name) is not None
        ]
        if len(declared) > 1:
            raise ValueError('Only one of body, json or form may be specified')

        return self
