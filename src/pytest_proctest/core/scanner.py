"""Line scanner over documentation sources.

The scanner is a stateful cursor over physical source lines. Every line
remembers the file and line number it came from, so lines spliced in from
included files still point at their own origin in error messages.

Block boundaries in the markup are purely indentation-based: the first
non-blank line inside a block establishes its base indentation, and the
block ends at the first line indented less than that baseline.
"""

from typing import TYPE_CHECKING, NamedTuple

from pytest_proctest.errors import UNNAMED_SOURCE, ParseError
from pytest_proctest.schema import SourceLocation

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence


class Line(NamedTuple):
    """A physical source line with its origin."""

    text: str
    filename: str = UNNAMED_SOURCE
    number: int = 1

    @property
    def blank(self) -> bool:
        """Whether the line holds only whitespace."""
        return not self.text.strip()

    @property
    def indent(self) -> int:
        """Number of leading whitespace characters."""
        return len(self.text) - len(self.text.lstrip())

    @property
    def stripped(self) -> str:
        """Line text without surrounding whitespace."""
        return self.text.strip()

    def location(self, column: int | None = None) -> SourceLocation:
        """Return the source location of the line.

        Args:
            column: 1-based column; defaults to the first non-blank character.
        """
        return SourceLocation(
            filename=self.filename,
            line=self.number,
            column=column or self.indent + 1,
        )


def split_lines(text: str, filename: str = UNNAMED_SOURCE) -> list[Line]:
    """Split source text into numbered lines.

    Tabs are expanded to spaces so indentation compares reliably.

    Args:
        text: Source text.
        filename: Name of the source file.

    Returns:
        Lines numbered from 1.
    """
    return [
        Line(raw.expandtabs(8).rstrip(), filename, number)
        for number, raw in enumerate(text.splitlines(), start=1)
    ]


def dedent_lines(lines: 'Sequence[Line]') -> str:
    """Join lines removing their common indentation.

    Leading and trailing blank lines are dropped.

    Args:
        lines: Lines of a literal block.

    Returns:
        Block text without a trailing newline.
    """
    content = [line for line in lines if not line.blank]
    if not content:
        return ''

    baseline = min(line.indent for line in content)
    text = '\n'.join(
        '' if line.blank else line.text[baseline:]
        for line in lines
    )

    return text.strip('\n')


class LineScanner:
    """Stateful cursor over source lines.

    Attributes:
        lines: Lines being scanned.
        position: Index of the next line to read.
    """

    def __init__(self, lines: 'Iterable[Line]') -> None:
        """Initialize the scanner.

        Args:
            lines: Lines to scan.
        """
        self.lines: list[Line] = list(lines)
        self.position = 0

    @classmethod
    def from_text(cls, text: str, filename: str = UNNAMED_SOURCE) -> 'LineScanner':
        """Create a scanner over source text."""
        return cls(split_lines(text, filename))

    @property
    def at_end(self) -> bool:
        """Whether all lines have been consumed."""
        return self.position >= len(self.lines)

    def peek(self, offset: int = 0) -> Line | None:
        """Return a line ahead of the cursor without consuming it.

        Args:
            offset: Distance from the cursor.

        Returns:
            The line, or None past the end of input.
        """
        index = self.position + offset
        if 0 <= index < len(self.lines):
            return self.lines[index]

        return None

    def advance(self) -> Line:
        """Consume and return the line under the cursor.

        Raises:
            IndexError: At the end of input.
        """
        if self.at_end:
            raise IndexError('No more lines to scan')

        line = self.lines[self.position]
        self.position += 1

        return line

    def read_block(self, parent_indent: int) -> list[Line]:
        """Consume the block nested under a line.

        The first non-blank line indented deeper than `parent_indent`
        establishes the block baseline. The block ends at the first
        non-blank line indented less than the baseline. Trailing blank
        lines are consumed but not returned.

        Args:
            parent_indent: Indentation of the line opening the block.

        Returns:
            Lines of the block, possibly empty.

        Raises:
            ParseError: If a line is indented less than the baseline but
                deeper than the opening line.
        """
        block: list[Line] = []
        baseline: int | None = None

        while (line := self.peek()) is not None:
            if line.blank:
                block.append(line)
                self.position += 1
                continue

            if baseline is None:
                if line.indent <= parent_indent:
                    break
                baseline = line.indent

            elif line.indent < baseline:
                if line.indent > parent_indent:
                    raise ParseError.at(
                        'Inconsistent indentation: line does not match the block baseline',
                        line.location(),
                        suggestion=f'indent the line by {baseline} spaces or end the block',
                    )
                break

            block.append(line)
            self.position += 1

        while block and block[-1].blank:
            block.pop()

        return block
