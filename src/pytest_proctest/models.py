"""Base Pydantic models for document and runtime elements.

This module defines the foundational model classes used by all parsed
structures and results. It enforces immutability and strict schema
validation so that a parsed document can be expanded and executed any
number of times without being altered in between.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchemaModel(BaseModel):
    """Base immutable model for all document elements.

    This class serves as the root for all Pydantic models representing
    document nodes, testable actions, requirements, and results.

    Design principles enforced by this model:
        - Immutability: nodes cannot be modified after creation. Variant
          expansion produces new nodes instead of editing the tree.
        - Strict schema validation: unknown or extra fields are rejected
          to avoid silent errors caused by typos in builders.

    All document models must inherit from this class.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        frozen=True,
        extra='forbid',
    )


class ConfigModel(SchemaModel):
    """Base immutable model for configuration sections.

    Configuration files use camelCase keys (`onUnresolved`,
    `persistAcrossSteps`), while Python code uses snake_case attributes.
    Both spellings are accepted on input.
    """

    model_config = ConfigDict(
        frozen=True,
        extra='forbid',
        alias_generator=to_camel,
        populate_by_name=True,
    )


class SettingsModel(BaseSettings):
    """Base immutable model for runtime settings.

    This class serves as the root for all settings models responsible for
    resolving runtime configuration (configuration files, environment
    variables, or local overrides).

    Design principles enforced by this model:
        - Immutability: resolved settings cannot be modified after creation.
          This guarantees consistent behavior during a whole run.
        - Tolerant schema handling: unknown or extra fields are ignored.
          This allows configuration files to carry keys consumed by other
          tools without breaking settings resolution.

    Top-level fields carry no aliases, so environment variables always
    use the `PROCTEST_` prefix (`PROCTEST_STATE_MANAGEMENT__STRATEGY`).
    """

    model_config = SettingsConfigDict(
        frozen=True,
        extra='ignore',
        env_prefix='PROCTEST_',
        env_nested_delimiter='__',
    )
