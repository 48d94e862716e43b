"""Tests for line scanning and include splicing."""

from typing import TYPE_CHECKING

import pytest

from pytest_proctest.core import IncludeResolver, LineScanner
from pytest_proctest.core.scanner import dedent_lines, split_lines
from pytest_proctest.errors import ParseError

if TYPE_CHECKING:
    from pathlib import Path


def test_split_lines_numbers_and_tabs() -> None:
    """Lines are numbered from 1 and tabs expand to spaces."""
    lines = split_lines('first\n\tsecond  \n', 'doc.rst')

    assert [line.number for line in lines] == [1, 2]
    assert lines[1].text == '        second'
    assert lines[1].indent == 8
    assert lines[1].location().column == 9
    assert lines[0].filename == 'doc.rst'


def test_read_block_baseline() -> None:
    """A block ends at the first line indented less than its baseline."""
    scanner = LineScanner.from_text(
        '.. note::\n'
        '\n'
        '   first\n'
        '\n'
        '      nested\n'
        '   second\n'
        '\n'
        'after\n'
    )
    scanner.advance()

    block = scanner.read_block(0)

    assert [line.stripped for line in block] == ['', 'first', '', 'nested', 'second']
    assert scanner.peek().stripped == 'after'


def test_read_block_empty() -> None:
    """A line not indented deeper than its parent opens no block."""
    scanner = LineScanner.from_text('.. note::\nafter\n')
    scanner.advance()

    assert scanner.read_block(0) == []
    assert scanner.peek().stripped == 'after'


def test_read_block_inconsistent_indentation() -> None:
    """A line between the parent and the baseline indentation is an error."""
    scanner = LineScanner.from_text(
        '.. note::\n'
        '\n'
        '    first\n'
        '  second\n'
    )
    scanner.advance()

    with pytest.raises(ParseError, match='Inconsistent indentation') as error:
        scanner.read_block(0)

    assert error.value.context['line_num'] == 4


def test_advance_past_end() -> None:
    """Advancing past the last line raises IndexError."""
    scanner = LineScanner.from_text('only\n')
    scanner.advance()

    assert scanner.at_end
    with pytest.raises(IndexError):
        scanner.advance()


def test_dedent_lines() -> None:
    """Common indentation and surrounding blank lines are removed."""
    lines = split_lines('\n    if x:\n        y()\n\n')

    assert dedent_lines(lines) == 'if x:\n    y()'


def test_include_splicing(tmp_path: 'Path') -> None:
    """Included lines take the directive indentation and keep their origin."""
    (tmp_path / 'snippet.rst').write_text('Included paragraph.\n\nSecond line.\n')
    source = tmp_path / 'index.rst'
    source.write_text('Intro.\n\n   .. include:: snippet\n\nOutro.\n')

    lines = IncludeResolver().expand(split_lines(source.read_text(), str(source)))
    texts = [line.text for line in lines]

    assert '   Included paragraph.' in texts
    assert '   Second line.' in texts

    included = next(line for line in lines if line.stripped == 'Second line.')
    assert included.filename == str(tmp_path / 'snippet.rst')
    assert included.number == 3


def test_include_from_source_root(tmp_path: 'Path') -> None:
    """Absolute include paths are relative to the project source directory."""
    (tmp_path / 'snooty.toml').write_text('name = "docs"\n')
    (tmp_path / 'source' / 'includes').mkdir(parents=True)
    (tmp_path / 'source' / 'includes' / 'shared.rst').write_text('Shared.\n')
    (tmp_path / 'source' / 'tutorial').mkdir()
    page = tmp_path / 'source' / 'tutorial' / 'page.rst'
    page.write_text('.. include:: /includes/shared.rst\n')

    lines = IncludeResolver().expand(split_lines(page.read_text(), str(page)))

    assert [line.stripped for line in lines if not line.blank] == ['Shared.']


def test_include_missing(tmp_path: 'Path') -> None:
    """An unresolvable include suggests checking the include path."""
    lines = split_lines('.. include:: missing.rst\n')

    with pytest.raises(ParseError, match='not found') as error:
        IncludeResolver().expand(lines, base_dir=tmp_path)

    assert 'check the include path' in error.value.suggestions[0]


def test_include_cycle(tmp_path: 'Path') -> None:
    """Files including each other are rejected."""
    (tmp_path / 'a.rst').write_text('.. include:: b.rst\n')
    (tmp_path / 'b.rst').write_text('.. include:: a.rst\n')
    source = tmp_path / 'a.rst'

    with pytest.raises(ParseError, match='Include cycle'):
        IncludeResolver().expand(split_lines(source.read_text(), str(source)))
