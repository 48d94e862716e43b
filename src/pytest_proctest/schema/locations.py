"""Source locations attached to every parsed element."""

from pydantic import Field

from pytest_proctest.models import SchemaModel


class SourceLocation(SchemaModel):
    """Position of an element in a source file.

    Lines and columns are 1-based. Locations of included content point
    into the included file, not into the file holding the include.
    """

    filename: str = Field(
        default='<unicode string>',
        title='Source file',
        description='Identifier of the file the element was read from.',
    )

    line: int = Field(
        default=1,
        ge=1,
        title='Line number',
    )
    column: int = Field(
        default=1,
        ge=1,
        title='Column number',
    )

    end_line: int | None = Field(
        default=None,
        ge=1,
        title='Last line of the element',
    )

    def __str__(self) -> str:
        """String representation."""
        return f'{self.filename}:{self.line}'
