"""Testable action definitions.

A testable action is one concrete, executable unit a reader would
perform while following a procedure: editing a file, running code or a
shell command, calling a CLI or an API, clicking through a UI,
downloading a file or opening a URL.

Actions form a tagged union discriminated by `action_type`. The type is
decided once, at parse time, and every variant carries only the fields
relevant to its kind. Placeholder tokens found in the textual fields are
recorded so the runtime can resolve them before execution.

This module is declarative and does not implement execution. Concrete
behavior is provided by executors registered with the orchestrator.
"""

from collections.abc import Mapping
from typing import Annotated, Any, ClassVar, Literal, Self

from pydantic import Field, model_validator

from pytest_proctest.models import SchemaModel
from pytest_proctest.names import find_placeholders

from .locations import SourceLocation

type ActionType = Literal['file', 'code', 'shell', 'ui', 'cli', 'api', 'download', 'url']

ACTION_TYPES: tuple[ActionType, ...] = ('file', 'code', 'shell', 'ui', 'cli', 'api', 'download', 'url')


def replace_tokens(text: str, values: Mapping[str, str]) -> str:
    """Replace every placeholder token of `values` found in text."""
    for token, replacement in values.items():
        text = text.replace(token, replacement)

    return text


class BaseAction(SchemaModel):
    """Base class for testable actions.

    Subclasses list the names of their free-text fields in `text_fields`,
    strings or mappings of strings; those fields are scanned for
    placeholder tokens on construction and rewritten by `substitute`.
    """

    #: Fields that may contain placeholder tokens.
    text_fields: ClassVar[tuple[str, ...]] = ()

    action_type: ActionType

    location: SourceLocation = Field(
        default_factory=SourceLocation,
        title='Source location',
    )

    placeholders: tuple[str, ...] = Field(
        default=(),
        title='Unresolved placeholders',
        description=(
            'Placeholder tokens found in the textual fields of the action, '
            'in order of first appearance, delimiters included.'
        ),
    )

    @model_validator(mode='before')
    @classmethod
    def collect_placeholders(cls, data: Any) -> Any:  # noqa: ANN401
        """Fill `placeholders` from the textual fields when not given.

        Args:
            data: Raw model input.

        Returns:
            Model input with placeholders filled in.
        """
        if not isinstance(data, dict) or 'placeholders' in data:
            return data

        tokens: list[str] = []
        for name in cls.text_fields:
            value = data.get(name)
            texts = value.values() if isinstance(value, Mapping) else (value,)
            for text in texts:
                if isinstance(text, str):
                    tokens.extend(
                        token for token in find_placeholders(text)
                        if token not in tokens
                    )

        return {**data, 'placeholders': tuple(tokens)}

    def substitute(self, values: Mapping[str, str]) -> Self:
        """Return a copy with placeholder tokens replaced.

        Args:
            values: Mapping of placeholder tokens to replacement text.

        Returns:
            A new action; replaced tokens are removed from `placeholders`.
        """
        if not values:
            return self

        update: dict[str, Any] = {}
        for name in self.text_fields:
            value = getattr(self, name)
            if isinstance(value, str):
                update[name] = replace_tokens(value, values)
            elif isinstance(value, Mapping):
                update[name] = {key: replace_tokens(text, values) for key, text in value.items()}

        update['placeholders'] = tuple(
            token for token in self.placeholders
            if token not in values
        )

        return self.model_copy(update=update)

    @property
    def summary(self) -> str:
        """Short one-line description used in reports and logs."""
        return self.action_type


class FileAction(BaseAction):
    """Create, overwrite or extend a file in the working directory."""

    text_fields: ClassVar[tuple[str, ...]] = ('path', 'content')

    action_type: Literal['file'] = 'file'

    operation: Literal['create', 'replace', 'append'] = Field(
        default='create',
        title='File operation',
    )
    path: str = Field(
        title='File path',
        description='Path of the file relative to the working directory.',
    )
    content: str = Field(
        default='',
        title='File content',
    )
    language: str = Field(
        default='undefined',
        title='Content language',
    )

    @property
    def summary(self) -> str:
        """Short one-line description used in reports and logs."""
        return f'{self.operation} {self.path}'


class CodeAction(BaseAction):
    """Run a snippet of source code with a language runtime.

    In `ide` mode the snippet is the content of a file created earlier in
    the procedure, and the configured IDE command for the language is
    used to run it.
    """

    text_fields: ClassVar[tuple[str, ...]] = ('code', 'path')

    action_type: Literal['code'] = 'code'

    language: str = Field(
        title='Canonical language name',
    )
    code: str = Field(
        title='Source code',
    )
    execution_mode: Literal['direct', 'ide'] = Field(
        default='direct',
        title='Execution mode',
    )
    path: str | None = Field(
        default=None,
        title='Source file path',
        description='File run in `ide` mode, relative to the working directory.',
    )

    @property
    def summary(self) -> str:
        """Short one-line description used in reports and logs."""
        if self.execution_mode == 'ide' and self.path:
            return f'run {self.path} ({self.language})'
        return f'run {self.language} snippet'


class ShellAction(BaseAction):
    """Run commands with a shell."""

    text_fields: ClassVar[tuple[str, ...]] = ('command',)

    action_type: Literal['shell'] = 'shell'

    command: str = Field(
        title='Shell commands',
    )

    @property
    def summary(self) -> str:
        """Short one-line description used in reports and logs."""
        return f'$ {self.command.splitlines()[0] if self.command else ""}'


class CliAction(BaseAction):
    """Invoke a product command-line tool."""

    text_fields: ClassVar[tuple[str, ...]] = ('command',)

    action_type: Literal['cli'] = 'cli'

    program: str = Field(
        title='Program name',
    )
    command: str = Field(
        title='Full command line',
    )

    @property
    def summary(self) -> str:
        """Short one-line description used in reports and logs."""
        return f'$ {self.command.splitlines()[0]}'


class ApiAction(BaseAction):
    """Call an HTTP API."""

    text_fields: ClassVar[tuple[str, ...]] = ('url', 'headers', 'body', 'command')

    action_type: Literal['api'] = 'api'

    method: str = Field(
        default='GET',
        title='HTTP method',
    )
    url: str = Field(
        title='Request URL',
    )
    headers: dict[str, str] = Field(
        default_factory=dict,
        title='Request headers',
    )
    body: str | None = Field(
        default=None,
        title='Request body',
    )
    command: str | None = Field(
        default=None,
        title='Original command',
        description='Command line the request was extracted from, if any.',
    )

    @property
    def summary(self) -> str:
        """Short one-line description used in reports and logs."""
        return f'{self.method} {self.url}'


class UiAction(BaseAction):
    """Interact with a user interface element."""

    text_fields: ClassVar[tuple[str, ...]] = ('target', 'value')

    action_type: Literal['ui'] = 'ui'

    operation: Literal['click', 'select', 'enter', 'toggle'] = Field(
        default='click',
        title='Interaction',
    )
    target: str = Field(
        title='UI label',
    )
    value: str | None = Field(
        default=None,
        title='Entered or selected value',
    )

    @property
    def summary(self) -> str:
        """Short one-line description used in reports and logs."""
        return f'{self.operation} "{self.target}"'


class DownloadAction(BaseAction):
    """Download a file."""

    text_fields: ClassVar[tuple[str, ...]] = ('url', 'filename')

    action_type: Literal['download'] = 'download'

    url: str = Field(
        title='Download URL',
    )
    filename: str | None = Field(
        default=None,
        title='Target file name',
    )

    @property
    def summary(self) -> str:
        """Short one-line description used in reports and logs."""
        return f'download {self.url}'


class UrlAction(BaseAction):
    """Open a URL."""

    text_fields: ClassVar[tuple[str, ...]] = ('url',)

    action_type: Literal['url'] = 'url'

    url: str = Field(
        title='URL',
    )

    @property
    def summary(self) -> str:
        """Short one-line description used in reports and logs."""
        return f'open {self.url}'


#: Any testable action, discriminated by `action_type`.
TestableAction = Annotated[
    FileAction | CodeAction | ShellAction | CliAction | ApiAction | UiAction | DownloadAction | UrlAction,
    Field(discriminator='action_type'),
]
