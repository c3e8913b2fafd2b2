"""Base pydantic models for document elements and settings.

Document models are immutable and strictly validated so that a parsed
plan is deterministic, explicit and safe to execute. Settings models are
immutable as well but tolerate unrelated environment variables.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchemaModel(BaseModel):
    """Base immutable model for all document elements.

    Design principles enforced by this model:
        - Immutability: elements cannot be modified after parsing, which
          keeps plans deterministic and comparable by value.
        - Strict schema validation: unknown fields are rejected to avoid
          silent errors caused by typos in test documents.

    All document models must inherit from this class.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        frozen=True,
        extra='forbid',
        populate_by_name=True,
    )


class DescribedMixin(SchemaModel):
    """Mixin providing element self-documentation.

    The fields defined in this model do not affect execution semantics
    and are used for reporting only.
    """

    title: str | None = Field(
        default=None,
        title='Title',
        description='Short human-readable title of the element.',
    )

    description: str | None = Field(
        default=None,
        title='Description',
        description='Detailed human-readable description of the element.',
    )


class SettingsModel(BaseSettings):
    """Base immutable model for runtime settings.

    Design principles enforced by this model:
        - Immutability: resolved settings cannot be modified after creation.
        - Tolerant schema handling: unknown or extra fields are ignored,
          so the surrounding environment may contain unrelated variables.

    All runtime settings models must inherit from this class.
    """

    model_config = SettingsConfigDict(
        frozen=True,
        extra='ignore',
    )
