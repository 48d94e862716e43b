"""Declared requirements gating procedure execution.

A prerequisites block lists what must be in place before a procedure can
be followed: installed software of a given version, environment
variables, running services, or configuration files. Requirements form a
tagged union discriminated by `kind`.
"""

from typing import Annotated, Literal

from pydantic import Field

from pytest_proctest.models import SchemaModel

from .locations import SourceLocation


class BaseRequirement(SchemaModel):
    """Base class for declared requirements."""

    description: str = Field(
        title='Description',
        description='Human-readable description of the requirement.',
    )

    optional: bool = Field(
        default=False,
        title='Optional flag',
        description=(
            'Unmet optional requirements are recorded but never '
            'block execution of the procedure.'
        ),
    )

    location: SourceLocation = Field(
        default_factory=SourceLocation,
        title='Source location',
    )


class SoftwareRequirement(BaseRequirement):
    """Installed software, optionally with a version constraint."""

    kind: Literal['software'] = 'software'

    name: str = Field(
        title='Software name',
    )
    version: str | None = Field(
        default=None,
        title='Version constraint',
        description='Comparison such as `>=18.0.0`; a bare version means a minimum.',
        examples=['>=18.0.0', '3.12', '>=1.2,<2'],
    )
    check: str | None = Field(
        default=None,
        title='Check command',
        description='Command printing the installed version, e.g. `node --version`.',
    )


class EnvironmentRequirement(BaseRequirement):
    """An environment variable that must be defined."""

    kind: Literal['environment'] = 'environment'

    variable: str = Field(
        title='Variable name',
    )


class ServiceRequirement(BaseRequirement):
    """A service that must be reachable or running."""

    kind: Literal['service'] = 'service'

    name: str = Field(
        title='Service name',
    )
    check: str | None = Field(
        default=None,
        title='Check command',
        description='Command exiting with status 0 when the service is available.',
    )
    path: str | None = Field(
        default=None,
        title='Marker file',
        description='File whose presence proves the service is available.',
    )


class ConfigurationRequirement(BaseRequirement):
    """A configuration resource that must exist."""

    kind: Literal['configuration'] = 'configuration'

    path: str | None = Field(
        default=None,
        title='Configuration file',
    )


#: Any declared requirement, discriminated by `kind`.
Requirement = Annotated[
    SoftwareRequirement | EnvironmentRequirement | ServiceRequirement | ConfigurationRequirement,
    Field(discriminator='kind'),
]


class PrerequisiteNode(SchemaModel):
    """Prerequisites declared for a procedure."""

    requirements: tuple[Requirement, ...] = Field(
        default=(),
        title='Requirements',
    )

    location: SourceLocation = Field(
        default_factory=SourceLocation,
        title='Source location',
    )

    def merge(self, other: 'PrerequisiteNode | None') -> 'PrerequisiteNode':
        """Return prerequisites holding requirements of both nodes."""
        if other is None:
            return self

        return self.model_copy(update={
            'requirements': (*self.requirements, *other.requirements),
        })
