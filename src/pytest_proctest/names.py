"""Names, languages and token patterns shared by the parser and runtime.

This module defines the canonical language table used to classify code
blocks, the mapping from languages to file extensions, and the compiled
patterns recognizing placeholder tokens and directive syntax.

The rules defined here form part of the public markup contract and are
relied upon by the parser, the action extractor, and the resolver.
"""

from pathlib import PurePosixPath
from re import ASCII, IGNORECASE
from re import compile as regexp
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from re import Match

CANONICAL_LANGUAGES: tuple[str, ...] = (
    'bash', 'c', 'cpp', 'csharp', 'go', 'java', 'javascript', 'json',
    'kotlin', 'php', 'python', 'ruby', 'rust', 'scala', 'shell', 'swift',
    'text', 'typescript', 'undefined', 'xml', 'yaml',
)

#: Spelling variants seen in documentation mapped to canonical names.
LANGUAGE_ALIASES: dict[str, str] = {
    '': 'undefined',
    'console': 'shell',
    'cs': 'csharp',
    'golang': 'go',
    'http': 'text',
    'ini': 'text',
    'js': 'javascript',
    'none': 'undefined',
    'sh': 'shell',
    'py': 'python',
    'python3': 'python',
    'ts': 'typescript',
    'c++': 'cpp',
    'zsh': 'shell',
    'yml': 'yaml',
}

LANGUAGE_EXTENSIONS: dict[str, str] = {
    'bash': '.sh',
    'c': '.c',
    'cpp': '.cpp',
    'csharp': '.cs',
    'go': '.go',
    'java': '.java',
    'javascript': '.js',
    'json': '.json',
    'kotlin': '.kt',
    'php': '.php',
    'python': '.py',
    'ruby': '.rb',
    'rust': '.rs',
    'scala': '.scala',
    'shell': '.sh',
    'swift': '.swift',
    'text': '.txt',
    'typescript': '.ts',
    'undefined': '.txt',
    'xml': '.xml',
    'yaml': '.yaml',
}

#: Languages whose blocks are commands for a shell.
SHELL_LANGUAGES = frozenset({'bash', 'shell'})

#: Languages whose blocks illustrate data or output, never executed.
DATA_LANGUAGES = frozenset({'json', 'text', 'undefined', 'xml', 'yaml'})

#: Substitution token, e.g. `{+api-version+}`.
SUBSTITUTION_PATTERN = regexp(r'\{\+(?P<name>[\w.-]+)\+\}', flags=ASCII)

#: Angle-bracket placeholder, e.g. `<username>` or `<your password>`.
#: Tokens glued to a preceding word (`List<String>`) are generics, not placeholders.
ANGLE_PATTERN = regexp(r'(?<![\w<])<(?P<name>[A-Za-z][\w-]*(?: [\w-]+){0,4})>(?!>)', flags=ASCII)

#: Header include preceding a bracketed name, e.g. `#include <iostream>`.
INCLUDE_PATTERN = regexp(r'#\s*(?:include|import)\s*$')

#: Directive opening line, e.g. `.. code-block:: python`.
DIRECTIVE_PATTERN = regexp(r'^\.\.\s+(?P<name>[a-zA-Z][\w:-]*)::(?:\s+(?P<argument>.*))?$')

#: Directive option line, e.g. `:tabid: macos`.
OPTION_PATTERN = regexp(r'^:(?P<key>[a-zA-Z][\w-]*):(?:\s+(?P<value>.*))?$')

#: Ordered list marker: `1.`, `a)`, `#.`.
LIST_MARKER_PATTERN = regexp(r'^(?P<marker>\d+|[a-zA-Z]|#)[.)](?P<space>\s+)(?P<text>\S.*)$')

#: Section adornment line, e.g. `=====`.
ADORNMENT_PATTERN = regexp(r'^([=\-~^"\'`#*+:.<>_])\1{2,}\s*$')

#: Separators collapsed to underscores when normalizing names.
SEPARATOR_PATTERN = regexp(r'[\s._-]+')

SLUG_PATTERN = regexp(r'[^a-z0-9]+', flags=IGNORECASE)


def normalize_language(language: str | None) -> str:
    """Return the canonical name for a code-block language.

    Args:
        language: Language as written in the document.

    Returns:
        A canonical language name; unknown languages map to `undefined`.
    """
    name = (language or '').strip().lower()
    if name in CANONICAL_LANGUAGES:
        return name

    return LANGUAGE_ALIASES.get(name, 'undefined')


def language_extension(language: str | None) -> str:
    """Return the conventional file extension for a language."""
    return LANGUAGE_EXTENSIONS.get(normalize_language(language), '.txt')


def slugify(value: str) -> str:
    """Make an identifier from free text.

    Args:
        value: Free text such as a tab title.

    Returns:
        Lowercase words joined by dashes.
    """
    return SLUG_PATTERN.sub('-', value.strip().lower()).strip('-')


def normalize_name(value: str) -> str:
    """Normalize a placeholder or variable name for comparison.

    Delimiters are stripped, case is folded and every run of separator
    characters collapses to a single underscore, so `<User Name>`,
    `{+user-name+}` and `USER_NAME` all normalize to `user_name`.

    Args:
        value: Raw token or variable name.

    Returns:
        The normalized name.
    """
    name = value.strip()
    if match := SUBSTITUTION_PATTERN.fullmatch(name):
        name = match.group('name')
    elif name.startswith('<') and name.endswith('>'):
        name = name[1:-1]

    return SEPARATOR_PATTERN.sub('_', name.casefold()).strip('_')


def is_angle_placeholder(match: 'Match[str]', text: str) -> bool:
    """Tell an angle placeholder from a header include or a markup tag.

    Args:
        match: Match of `ANGLE_PATTERN` in `text`.
        text: Text the match was found in.

    Returns:
        False for `#include <iostream>` style headers and for tags closed
        later in the text, as in `<div>...</div>`.
    """
    line_start = text.rfind('\n', 0, match.start()) + 1
    if INCLUDE_PATTERN.search(text, line_start, match.start()):
        return False

    return f'</{match.group("name")}>' not in text


def find_placeholders(text: str) -> tuple[str, ...]:
    """Find placeholder tokens in text.

    Args:
        text: Text of an action field.

    Returns:
        Unique tokens in order of first appearance, delimiters included.
    """
    found: dict[str, int] = {}
    for match in SUBSTITUTION_PATTERN.finditer(text):
        found.setdefault(match.group(0), match.start())
    for match in ANGLE_PATTERN.finditer(text):
        if is_angle_placeholder(match, text):
            found.setdefault(match.group(0), match.start())

    return tuple(sorted(found, key=found.__getitem__))


def language_from_path(path: str) -> str:
    """Guess the canonical language of a file from its extension."""
    suffix = PurePosixPath(path).suffix.lower()
    if not suffix:
        return 'undefined'

    for language, extension in LANGUAGE_EXTENSIONS.items():
        if extension == suffix:
            return language

    return 'undefined'
