"""Definitions of environment inputs for test documents.

A document may declare the environment variables it needs. The
declarations are compiled into a pydantic settings model at run time,
so values are read and validated only when the document executes and
the parser itself stays free of environment access.
"""

from typing import Annotated, Any, Literal, Self

from pydantic import Field, RootModel, SecretStr, ValidationError, create_model, model_validator

from testkit.errors import ResolutionError
from testkit.models import SchemaModel, SettingsModel
from testkit.names import VARIABLE_PATTERN
from testkit.values import Value  # noqa: TC001

type TypeName = Literal['str', 'int', 'float', 'bool', 'object', 'list']


class InputDefinition(SchemaModel):
    """Definition of a single environment input.

    An input may be required or optional, may define a default value,
    and can be marked as secret to keep it out of reports.
    """

    name: str = Field(
        pattern=VARIABLE_PATTERN.pattern,
        title='Input name',
        description=(
            'Name of the environment variable.\n'
            'The value is exposed to placeholders as `${envs.<name>}`.'
        ),
    )
    description: str | None = Field(
        default=None,
        title='Input description',
        description='Human-readable description of the input.',
    )

    value_type: TypeName = Field(
        default='str',
        validation_alias='type',
        title='Input type',
        description='Data type of the input.',
    )

    default: Value = Field(
        default=None,
        title='Default value',
        description=(
            'Default value used when the variable is not set.\n'
            'Must not be specified for required inputs.'
        ),
    )
    required: bool = Field(
        default=False,
        title='Required flag',
        description='Indicates whether the variable must be set.',
    )

    secret: bool = Field(
        default=False,
        title='Secret flag',
        description='Marks the input as sensitive; it is masked in reports.',
    )

    @model_validator(mode='after')
    def check_default_required(self) -> Self:
        """Reject a default value on a required input.

        Returns:
            Self.

        Raises:
            ValueError: If both a `default` value and `required` are set.
        """
        if not self.required or self.default is None:
            return self

        raise ValueError('Specified both a default value and a required constraint')

    @model_validator(mode='after')
    def check_secret_type(self) -> Self:
        """Allow the `secret` flag on string inputs only.

        Returns:
            Self.

        Raises:
            ValueError: If `secret` is specified for a non-string type.
        """
        if not self.secret or self.value_type == 'str':
            return self

        raise ValueError('Specified secret on non-string type')


class EnvironmentDefinition(RootModel[list[InputDefinition]]):
    """Ordered collection of environment input definitions."""

    root: list[InputDefinition] = Field(
        default_factory=list,
        title='Environment definitions',
        description='List of environment input definitions.',
    )

    @staticmethod
    def build_field_type(definition: InputDefinition) -> type[Any]:  # noqa: PLR0911
        """Resolve the Python type for an input definition.

        Args:
            definition: Input definition to resolve.

        Returns:
            A Python type corresponding to the input definition.

        Raises:
            ValueError: If type is not supported.
        """
        match definition.value_type:
            case 'str':
                if definition.secret:
                    return SecretStr
                return str
            case 'int':
                return int
            case 'float':
                return float
            case 'bool':
                return bool
            case 'object':
                return dict
            case 'list':
                return list

        raise ValueError('Unsupported type')  # pragma: no cover

    def build_fields(self) -> dict[str, Any]:
        """Build pydantic field definitions from input definitions.

        Returns:
            A mapping suitable for passing to `pydantic.create_model`.
        """
        fields = {}
        for definition in self.root:
            field_type = self.build_field_type(definition)
            field_info = Field(
                default=... if definition.required else definition.default,
                description=definition.description,
                title=definition.name,
            )
            fields[definition.name] = Annotated[field_type | None, field_info]

        return fields

    def build(self) -> type[SettingsModel]:
        """Create a settings model from the definitions.

        Returns:
            A dynamically created `SettingsModel` subclass.
        """
        return create_model('EnvironmentSettings', __base__=SettingsModel, **self.build_fields())


class EnvironmentMixin(SchemaModel):
    """Mixin providing environment resolution for a document.

    The resolved environment is exposed to placeholders under the
    `envs` variable.
    """

    environment: EnvironmentDefinition = Field(
        default_factory=EnvironmentDefinition,
        validation_alias='envs',
        title='Environment definition',
        description=(
            'Environment variables required by the document.\n'
            'Values are read when the document runs, not when it is parsed.'
        ),
    )

    def resolve_environment(self) -> dict[str, Value]:
        """Read and validate the declared environment variables.

        Returns:
            A dictionary with validated environment data, or an empty
            dictionary if nothing was declared.

        Raises:
            ResolutionError: If a required variable is missing or a value
                does not match its declared type.
        """
        if not self.environment.root:
            return {}

        environment_model = self.environment.build()
        try:
            environment = environment_model()
        except ValidationError as base:
            names = sorted({
                str(item['loc'][0])
                for item in base.errors(include_url=False)
                if item['loc']
            })
            raise ResolutionError(
                f'Can not read environment variables: {', '.join(names)}',
                placeholder=f'envs.{names[0]}' if names else 'envs',
            ) from base

        return environment.model_dump()
