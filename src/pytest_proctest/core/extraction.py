"""Parse-time action classification.

Actions are classified exactly once, while the document is parsed, from
the code block or paragraph they come from and the text around it:

- a paragraph announcing a file turns the next code block into a file
  action;
- shell blocks become shell, CLI or API actions depending on the program
  they call;
- blocks in other executable languages become code actions;
- paragraphs with UI labels, download links or navigation links become
  UI, download and URL actions.

The extractor is stateful within one step body: a file announcement
stays pending until the next code block, and the last file written is
remembered so that a later "run the file" instruction can execute it.
"""

from copy import copy
from posixpath import basename
from re import IGNORECASE, Pattern
from re import compile as regexp
from shlex import split as shell_split
from typing import TYPE_CHECKING, Literal

from loguru import logger

from pytest_proctest.names import (
    DATA_LANGUAGES,
    SHELL_LANGUAGES,
    SUBSTITUTION_PATTERN,
    language_from_path,
)
from pytest_proctest.schema import (
    ApiAction,
    CliAction,
    CodeAction,
    DownloadAction,
    FileAction,
    Reference,
    ShellAction,
    UiAction,
    UrlAction,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from pytest_proctest.schema import SourceLocation, TestableAction

    from .scanner import Line

type FileOperation = Literal['create', 'replace', 'append']
type UiOperation = Literal['click', 'select', 'enter', 'toggle']

#: Command-line programs of products, executed as CLI actions.
CLI_PROGRAMS = frozenset({
    'atlas', 'aws', 'az', 'docker', 'gcloud', 'gh', 'kubectl',
    'mongodump', 'mongoexport', 'mongoimport', 'mongorestore', 'mongosh',
})

#: Console prompts stripped from shell blocks.
PROMPTS: tuple[str, ...] = ('$ ', '% ', '> ')

_PATH = r'(?:``|:file:`)(?P<path>[^`\s]+)(?:``|`)'

#: Paragraph patterns announcing the file the next code block belongs to.
FILE_ANNOUNCEMENTS: tuple[tuple[FileOperation, Pattern[str]], ...] = (
    ('replace', regexp(rf'\breplace the (?:entire )?contents? of (?:the file )?{_PATH}', IGNORECASE)),
    ('create', regexp(rf'\bcreate (?:a |an |the )?(?:new )?file (?:named |called )?{_PATH}', IGNORECASE)),
    ('create', regexp(rf'\bin (?:a |an |the )?(?:new )?file (?:named |called )?{_PATH}', IGNORECASE)),
    ('create', regexp(rf'\bsave\b.*?\bas {_PATH}', IGNORECASE)),
    ('create', regexp(rf'\bpaste\b.*?\binto (?:the (?:file )?|a file named )?{_PATH}', IGNORECASE)),
    ('append', regexp(rf'\b(?:add|append)\b.*?\b(?:to|end of) (?:the (?:file )?)?{_PATH}', IGNORECASE)),
)

#: A caption naming a file, e.g. `app.py` or `config/settings.json`.
FILENAME_PATTERN = regexp(r'^[\w.-]+(?:/[\w.-]+)*\.[A-Za-z0-9]+$')

#: Paragraphs asking to run the last written file.
IDE_RUN_PATTERN = regexp(
    r'\b(?:run (?:the|your|this) (?:file|application|app|program|code|project)\b'
    r'|(?:from|in|using) (?:your|an|the) IDE\b)',
    IGNORECASE,
)

ROLE_PATTERN = regexp(r':(?P<role>ref|doc|guilabel):`(?P<body>[^`]+)`')
LINK_PATTERN = regexp(r'`(?P<text>[^`<]*?)\s*<(?P<url>https?://[^>\s]+)>`__?')
BARE_URL_PATTERN = regexp(r'(?<![<`/\w])https?://[^\s<>`\'")]+')
TARGET_PATTERN = regexp(r'^(?P<text>.*?)\s*<(?P<target>[^<>]+)>$')

UI_VERBS: tuple[tuple[UiOperation, Pattern[str]], ...] = (
    ('toggle', regexp(r'\b(?:toggle|enable|disable|turn (?:on|off)|check|uncheck)\b', IGNORECASE)),
    ('enter', regexp(r'\b(?:enter|type|fill in|specify|input)\b', IGNORECASE)),
    ('select', regexp(r'\b(?:select|choose|pick)\b', IGNORECASE)),
    ('click', regexp(r'\b(?:click|press|tap)\b', IGNORECASE)),
)
LITERAL_PATTERN = regexp(r'``(?P<value>[^`]+)``')
DOWNLOAD_PATTERN = regexp(r'\bdownload\b', IGNORECASE)
NAVIGATE_PATTERN = regexp(r'\b(?:navigate to|open|go to|visit|browse to)\b', IGNORECASE)

CURL_VALUE_OPTIONS = frozenset({
    '-X', '--request', '-H', '--header', '-d', '--data', '--data-raw',
    '--data-binary', '--data-urlencode', '--json', '-u', '--user',
    '-o', '--output', '--url',
})


def split_target(body: str) -> tuple[str | None, str]:
    """Split a role body such as `Title <target>` into text and target."""
    if match := TARGET_PATTERN.match(body.strip()):
        return match.group('text') or None, match.group('target')

    return None, body.strip()


def scan_references(lines: 'Iterable[Line]') -> 'Iterator[Reference]':
    """Scan physical lines for inline references.

    Cross-references, external links, UI labels and substitution tokens
    are found per line, independently of block nesting.

    Args:
        lines: Source lines.

    Yields:
        References in document order.
    """
    for line in lines:
        if line.blank:
            continue

        found: list[tuple[int, Reference]] = []

        for match in ROLE_PATTERN.finditer(line.text):
            role = match.group('role')
            if role == 'guilabel':
                text, target = None, match.group('body').strip()
            else:
                text, target = split_target(match.group('body'))
            found.append((match.start(), Reference(
                kind=role,
                target=target,
                text=text,
                location=line.location(match.start() + 1),
            )))

        for match in LINK_PATTERN.finditer(line.text):
            found.append((match.start(), Reference(
                kind='link',
                target=match.group('url'),
                text=match.group('text') or None,
                location=line.location(match.start() + 1),
            )))

        for match in BARE_URL_PATTERN.finditer(line.text):
            found.append((match.start(), Reference(
                kind='link',
                target=match.group(0).rstrip('.,;:'),
                location=line.location(match.start() + 1),
            )))

        for match in SUBSTITUTION_PATTERN.finditer(line.text):
            found.append((match.start(), Reference(
                kind='substitution',
                target=match.group('name'),
                location=line.location(match.start() + 1),
            )))

        for _, reference in sorted(found, key=lambda item: item[0]):
            yield reference


def strip_prompts(code: str) -> str:
    """Remove console prompts from a shell block.

    When prompts are present, only prompt lines and their `\\`
    continuations are commands; other lines are output.

    Args:
        code: Shell block text.

    Returns:
        Commands without prompts.
    """
    lines = code.splitlines()
    if not any(line.lstrip().startswith(PROMPTS) for line in lines):
        return code

    commands: list[str] = []
    continued = False
    for line in lines:
        stripped = line.lstrip()
        if stripped.startswith(PROMPTS):
            commands.append(stripped[2:])
        elif continued:
            commands.append(line)
        else:
            continue
        continued = line.rstrip().endswith('\\')

    return '\n'.join(commands)


def first_program(command: str) -> str | None:
    """Return the program invoked by the first command line."""
    for line in command.splitlines():
        words = line.strip().split()
        while words and '=' in words[0] and not words[0].startswith('-'):
            words.pop(0)
        if words and words[0] == 'sudo':
            words.pop(0)
        if words and not words[0].startswith('#'):
            return basename(words[0])

    return None


def parse_curl(command: str, location: 'SourceLocation') -> ApiAction | None:
    """Parse a curl command into an API action.

    Args:
        command: Command line starting with `curl`.
        location: Location of the code block.

    Returns:
        The API action, or None when the command can not be split.
    """
    try:
        words = shell_split(command.replace('\\\n', ' '))

    except ValueError:
        return None

    method: str | None = None
    headers: dict[str, str] = {}
    body: str | None = None
    positional: list[str] = []

    arguments = iter(words[1:])
    for word in arguments:
        if word in CURL_VALUE_OPTIONS:
            value = next(arguments, '')
            match word:
                case '-X' | '--request':
                    method = value.upper()
                case '-H' | '--header':
                    name, _, content = value.partition(':')
                    headers[name.strip()] = content.strip()
                case '--url':
                    positional.insert(0, value)
                case '-d' | '--data' | '--data-raw' | '--data-binary' | '--data-urlencode' | '--json':
                    body = value
        elif not word.startswith('-'):
            positional.append(word)

    urls = [word for word in positional if word.startswith(('http://', 'https://'))]
    if not (url := next(iter(urls or positional), None)):
        return None

    return ApiAction(
        method=method or ('POST' if body is not None else 'GET'),
        url=url,
        headers=headers,
        body=body,
        command=command,
        location=location,
    )


class ActionExtractor:
    """Stateful classifier of code blocks and paragraphs within a step.

    Attributes:
        pending: File target announced by the last paragraph, if any.
        last_file: Last file action produced.
    """

    def __init__(self) -> None:
        """Initialize an extractor with no pending file."""
        self.pending: tuple[FileOperation, str] | None = None
        self.last_file: FileAction | None = None

    def fork(self) -> 'ActionExtractor':
        """Return a copy for a mutually-exclusive content branch."""
        return copy(self)

    def settle(self) -> None:
        """Drop a pending file announcement after exclusive content."""
        self.pending = None

    def paragraph(self, text: str, location: 'SourceLocation') -> tuple['TestableAction', ...]:
        """Classify a paragraph.

        A file announcement produces no action but applies to the next code
        block.

        Args:
            text: Paragraph text joined into one line.
            location: Location of the paragraph.

        Returns:
            Actions described by the paragraph.
        """
        for operation, pattern in FILE_ANNOUNCEMENTS:
            if match := pattern.search(text):
                self.pending = (operation, match.group('path'))
                return ()

        actions: list[TestableAction] = []

        if self.last_file is not None and IDE_RUN_PATTERN.search(text):
            language = self.last_file.language
            if language not in DATA_LANGUAGES | SHELL_LANGUAGES:
                actions.append(CodeAction(
                    language=language,
                    code=self.last_file.content,
                    execution_mode='ide',
                    path=self.last_file.path,
                    location=location,
                ))

        actions.extend(self.ui_actions(text, location))

        urls = [match.group('url') for match in LINK_PATTERN.finditer(text)]
        urls.extend(match.group(0).rstrip('.,;:') for match in BARE_URL_PATTERN.finditer(text))
        if urls and DOWNLOAD_PATTERN.search(text):
            for url in urls:
                name = basename(url.split('?', 1)[0])
                actions.append(DownloadAction(
                    url=url,
                    filename=name if '.' in name else None,
                    location=location,
                ))
        elif urls and NAVIGATE_PATTERN.search(text):
            actions.extend(UrlAction(url=url, location=location) for url in urls)

        return tuple(actions)

    @staticmethod
    def ui_actions(text: str, location: 'SourceLocation') -> 'Iterator[UiAction]':
        """Find UI interactions with labelled elements.

        Each label is paired with the closest interaction verb before it.
        """
        for match in ROLE_PATTERN.finditer(text):
            if match.group('role') != 'guilabel':
                continue

            prefix = text[:match.start()]
            operation: UiOperation | None = None
            position = -1
            for candidate, pattern in UI_VERBS:
                for verb in pattern.finditer(prefix):
                    if verb.start() > position:
                        operation, position = candidate, verb.start()

            if operation is None:
                continue

            value = None
            if operation == 'enter' and (literal := LITERAL_PATTERN.search(prefix[position:])):
                value = literal.group('value')

            yield UiAction(
                operation=operation,
                target=match.group('body').strip(),
                value=value,
                location=location,
            )

    def code_block(self, language: str, code: str, location: 'SourceLocation', *,
                   caption: str | None = None,
                   copyable: bool = True) -> 'TestableAction | None':
        """Classify a code block.

        Args:
            language: Canonical block language.
            code: Block text.
            location: Location of the block.
            caption: Block caption.
            copyable: Whether readers are meant to copy the block.

        Returns:
            The action the block describes, or None.
        """
        target = self.pending
        self.pending = None

        if target is None and caption and FILENAME_PATTERN.match(caption.strip()):
            target = ('create', caption.strip())

        if target is not None:
            operation, path = target
            if language == 'undefined':
                language = language_from_path(path)
            action = FileAction(
                operation=operation,
                path=path,
                content=code,
                language=language,
                location=location,
            )
            self.last_file = action
            return action

        if not copyable or language in DATA_LANGUAGES:
            return None

        if language in SHELL_LANGUAGES:
            return self.shell_action(code, location)

        return CodeAction(language=language, code=code, location=location)

    @staticmethod
    def shell_action(code: str, location: 'SourceLocation') -> 'TestableAction | None':
        """Classify shell commands by the program they call."""
        command = strip_prompts(code).strip()
        if not command:
            return None

        program = first_program(command)
        if program == 'curl' and (action := parse_curl(command, location)):
            return action

        if program in CLI_PROGRAMS:
            return CliAction(program=program, command=command, location=location)

        logger.trace('Shell command {!r} at {}', program, location)

        return ShellAction(command=command, location=location)
