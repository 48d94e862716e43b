"""Include path resolution and splicing.

Include directives name files either relative to the including file or,
when the path starts with `/`, relative to the documentation source root.
The root is found by walking up from the including file until a project
marker appears; by convention, documentation sources then live under its
`source/` directory. Included paths may omit their `.rst` or `.txt`
suffix.
"""

from pathlib import Path
from re import compile as regexp
from typing import TYPE_CHECKING

from loguru import logger

from pytest_proctest.errors import UNNAMED_SOURCE, ParseError

from .scanner import Line, split_lines

if TYPE_CHECKING:
    from collections.abc import Sequence

    from pytest_proctest.schema import SourceLocation

#: Files or directories marking the root of a documentation project.
ROOT_MARKERS: tuple[str, ...] = ('snooty.toml', '.proctest.yaml', '.git')

#: Suffixes tried in order when resolving an include path.
INCLUDE_SUFFIXES: tuple[str, ...] = ('', '.rst', '.txt')

#: Directory holding documentation sources under the project root.
SOURCE_DIRECTORY = 'source'

INCLUDE_PATTERN = regexp(r'^(?P<indent>\s*)\.\.\s+include::\s+(?P<path>\S+)\s*$')


class IncludeResolver:
    """File-system collaborator resolving and splicing included files.

    Attributes:
        markers: Project root markers searched for in parent directories.
        suffixes: Suffixes tried when resolving a path.
    """

    def __init__(self, markers: 'Sequence[str]' = ROOT_MARKERS,
                 suffixes: 'Sequence[str]' = INCLUDE_SUFFIXES) -> None:
        """Initialize the resolver.

        Args:
            markers: Project root markers.
            suffixes: Suffixes tried when resolving a path.
        """
        self.markers = tuple(markers)
        self.suffixes = tuple(suffixes)

    def find_root(self, start: Path) -> Path | None:
        """Find the project root above a directory.

        Args:
            start: Directory to start from.

        Returns:
            The closest directory holding a root marker, or None.
        """
        for directory in (start, *start.parents):
            if any((directory / marker).exists() for marker in self.markers):
                return directory

        return None

    def source_root(self, start: Path) -> Path:
        """Return the directory absolute include paths are relative to."""
        root = self.find_root(start) or start
        if (root / SOURCE_DIRECTORY).is_dir():
            return root / SOURCE_DIRECTORY

        return root

    def base_directory(self, filename: str, base_dir: Path | None = None) -> Path:
        """Return the directory of the including file."""
        if filename and filename != UNNAMED_SOURCE:
            return Path(filename).parent

        return base_dir or Path.cwd()

    def resolve(self, target: str, location: 'SourceLocation', *,
                base_dir: Path | None = None) -> Path:
        """Resolve an include target to an existing file.

        Args:
            target: Path as written in the directive.
            location: Location of the directive.
            base_dir: Directory used for sources that are not files.

        Returns:
            Path of the included file.

        Raises:
            ParseError: If no candidate file exists.
        """
        directory = self.base_directory(location.filename, base_dir)
        if target.startswith('/'):
            base = self.source_root(directory) / target.lstrip('/')
        else:
            base = directory / target

        for suffix in self.suffixes:
            candidate = base.with_name(base.name + suffix)
            if candidate.is_file():
                return candidate

        raise ParseError.at(
            f'Included file {target} not found',
            location,
            suggestion=f'check the include path (looked for {base})',
        )

    def read(self, target: str, location: 'SourceLocation', *,
             base_dir: Path | None = None) -> tuple[Path, str]:
        """Resolve and read an included file.

        Returns:
            Resolved path and file text.

        Raises:
            ParseError: If the file cannot be found or read.
        """
        path = self.resolve(target, location, base_dir=base_dir)
        try:
            return path, path.read_text(encoding='utf-8')

        except (OSError, UnicodeDecodeError) as base:
            raise ParseError.at(
                f'Included file {target} can not be read: {base}',
                location,
                suggestion='check the include path',
            ) from base

    def expand(self, lines: 'Sequence[Line]', *,
               base_dir: Path | None = None,
               chain: tuple[str, ...] = ()) -> list[Line]:
        """Splice included files into a line sequence.

        Included lines are indented to the directive's indentation and keep
        their own file name and line numbers. Option lines nested under an
        include directive are dropped.

        Args:
            lines: Lines possibly holding include directives.
            base_dir: Directory used for sources that are not files.
            chain: Resolved paths of the files currently being included.

        Returns:
            Lines with every include directive replaced.

        Raises:
            ParseError: If an include cannot be resolved or forms a cycle.
        """
        expanded: list[Line] = []
        skip_under: int | None = None

        for line in lines:
            if skip_under is not None:
                if line.blank:
                    expanded.append(line)
                    continue
                if line.indent > skip_under:
                    continue
                skip_under = None

            if not (match := INCLUDE_PATTERN.match(line.text)):
                expanded.append(line)
                continue

            location = line.location()
            path, text = self.read(match.group('path'), location, base_dir=base_dir)

            key = str(path.resolve())
            current = (
                str(Path(line.filename).resolve())
                if line.filename != UNNAMED_SOURCE else None
            )
            if key in chain or key == current:
                raise ParseError.at(
                    f'Include cycle detected for {match.group("path")}',
                    location,
                    suggestion='remove the recursive include',
                )

            logger.debug('Including {} at {}', path, location)

            prefix = match.group('indent')
            included = [
                Line(prefix + item.text if item.text else '', item.filename, item.number)
                for item in split_lines(text, str(path))
            ]

            nested = (*chain, current) if current else chain
            expanded.extend(self.expand(included, base_dir=base_dir, chain=(*nested, key)))
            expanded.append(Line('', line.filename, line.number))
            skip_under = line.indent

        return expanded
