"""Directive parser for documentation procedures.

This module defines a targeted structural parser for the documentation
markup dialect. It recognizes only the constructs that matter for
testing procedures and ignores everything else:

- `procedure` and `step` blocks, and ordered lists at the top level of a
  step, which become sub-steps;
- `tabs`/`tab` and `composable-tutorial`/`selected-content` groups of
  mutually-exclusive content;
- `code-block` and `literal-include` blocks carrying the code readers
  run;
- `include` directives, spliced before parsing;
- `prerequisites` blocks listing what a procedure requires.

Block boundaries are determined by indentation. Directive options must
appear contiguously before block content. Inline roles are scanned per
physical line into a side channel of references.

The parser never mutates the produced tree; the result is an immutable
`DocumentAST`.
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, NamedTuple

from loguru import logger

from pytest_proctest.errors import UNNAMED_SOURCE, ParseError
from pytest_proctest.names import (
    ADORNMENT_PATTERN,
    DIRECTIVE_PATTERN,
    LIST_MARKER_PATTERN,
    OPTION_PATTERN,
    language_from_path,
    normalize_language,
    slugify,
)
from pytest_proctest.schema import (
    CodeBlockNode,
    ComposableTutorialNode,
    ConfigurationRequirement,
    DocumentAST,
    EnvironmentRequirement,
    ParagraphNode,
    PrerequisiteNode,
    ProcedureNode,
    SelectedContentNode,
    ServiceRequirement,
    SoftwareRequirement,
    StepNode,
    SubStepNode,
    TabNode,
    TabsNode,
)

from .extraction import ActionExtractor, scan_references
from .includes import IncludeResolver
from .scanner import Line, LineScanner, dedent_lines, split_lines

if TYPE_CHECKING:
    from collections.abc import Callable
    from re import Match

    from pytest_proctest.schema import ContentNode, Requirement

CODE_DIRECTIVES = frozenset({'code-block', 'code', 'sourcecode', 'input'})
LITERAL_INCLUDE_DIRECTIVES = frozenset({'literal-include', 'literalinclude'})
REQUIREMENT_DIRECTIVES = frozenset({'software', 'environment', 'service', 'configuration'})

#: Directives whose content is never tested.
IGNORED_DIRECTIVES = frozenset({
    'contents', 'facet', 'figure', 'image', 'meta', 'output', 'tabs-selector',
    'toctree',
})

#: Options recognized per directive. An option line of this set found
#: after the directive content has begun is a structural error.
DIRECTIVE_OPTIONS: dict[str, frozenset[str]] = {
    'procedure': frozenset({'title', 'style'}),
    'step': frozenset({'title'}),
    'tab': frozenset({'tabid'}),
    'composable-tutorial': frozenset({'options', 'defaults'}),
    'selected-content': frozenset({'selections'}),
    'code-block': frozenset({
        'caption', 'copyable', 'emphasize-lines', 'language', 'linenos',
    }),
    'literal-include': frozenset({
        'caption', 'copyable', 'dedent', 'emphasize-lines', 'end-before',
        'language', 'linenos', 'start-after',
    }),
    'software': frozenset({'version', 'check', 'optional', 'description'}),
    'environment': frozenset({'optional', 'description'}),
    'service': frozenset({'check', 'file', 'optional', 'description'}),
    'configuration': frozenset({'file', 'optional', 'description'}),
}

FALSE_VALUES = frozenset({'false', 'no', 'off', '0'})


class Directive(NamedTuple):
    """A directive with its options and body lines."""

    name: str
    argument: str
    options: dict[str, str]
    body: list[Line]
    line: Line


@dataclass
class DocumentState:
    """Mutable state of a single parse."""

    filename: str
    base_dir: Path | None = None

    procedures: list[ProcedureNode] = field(default_factory=list)
    tutorials: list[ComposableTutorialNode] = field(default_factory=list)

    heading: str | None = None
    pending_prerequisites: PrerequisiteNode | None = None
    procedure_prerequisites: list[PrerequisiteNode] | None = None
    step_count: int = 0


@dataclass(frozen=True)
class BlockContext:
    """Position of a block within the document structure."""

    in_procedure: bool = False
    in_step: bool = False
    tutorial: str | None = None
    extractor: ActionExtractor | None = None


def split_list(value: str | None) -> tuple[str, ...]:
    """Split a comma-separated option value."""
    if not value:
        return ()

    return tuple(item.strip() for item in value.split(',') if item.strip())


def parse_flag(value: str | None, *, default: bool = False) -> bool:
    """Interpret a flag option.

    A flag given without a value is true.

    Args:
        value: Option value, `''` when given without a value.
        default: Result when the option is absent.
    """
    if value is None:
        return default

    return value.strip().lower() not in FALSE_VALUES


class DocumentParser:
    """Targeted structural parser building a `DocumentAST`.

    The parser is stateless between calls and may be reused.

    Attributes:
        includes: File-system collaborator resolving included files.
    """

    def __init__(self, includes: IncludeResolver | None = None) -> None:
        """Initialize the parser.

        Args:
            includes: Include resolver; a default resolver is used when omitted.
        """
        self.includes = includes or IncludeResolver()

        self._handlers: dict[str, Callable[[Directive, DocumentState, BlockContext], list[ContentNode]]] = {
            'procedure': self._parse_procedure,
            'step': self._parse_step,
            'tabs': self._parse_tabs,
            'tab': self._parse_orphan_tab,
            'composable-tutorial': self._parse_tutorial,
            'selected-content': self._parse_selected_content,
            'prerequisites': self._parse_prerequisites,
        }

    def parse(self, text: str, filename: str = UNNAMED_SOURCE, *,
              base_dir: Path | None = None) -> DocumentAST:
        """Parse documentation source text.

        Args:
            text: Source text.
            filename: Name of the source file, used in locations and to
                resolve relative includes.
            base_dir: Directory relative includes are resolved against when
                the source is not a file.

        Returns:
            The document tree.

        Raises:
            ParseError: If the source is structurally invalid or an include
                can not be resolved.
        """
        lines = self.includes.expand(split_lines(text, filename), base_dir=base_dir)
        state = DocumentState(filename=filename, base_dir=base_dir)

        self._parse_block(LineScanner(lines), state, BlockContext())

        logger.debug('Parsed {} procedure(s) from {}', len(state.procedures), filename)

        return DocumentAST(
            filename=filename,
            procedures=tuple(state.procedures),
            references=tuple(scan_references(lines)),
            tutorials=tuple(state.tutorials),
        )

    def parse_file(self, path: Path | str) -> DocumentAST:
        """Parse a documentation source file.

        Args:
            path: Path to the file.

        Returns:
            The document tree.

        Raises:
            ParseError: If the source is structurally invalid or an include
                can not be resolved.
            OSError: If the file can not be read.
        """
        path = Path(path)

        return self.parse(path.read_text(encoding='utf-8'), str(path), base_dir=path.parent)

    def _parse_block(self, scanner: LineScanner, state: DocumentState,
                     context: BlockContext) -> list['ContentNode']:
        """Parse a sequence of content lines.

        Args:
            scanner: Scanner over the block lines.
            state: Parse state.
            context: Position of the block.

        Returns:
            Content nodes in document order.
        """
        nodes: list[ContentNode] = []
        substeps = 0

        while (line := scanner.peek()) is not None:
            if line.blank:
                scanner.advance()
                continue

            if match := DIRECTIVE_PATTERN.match(line.stripped):
                scanner.advance()
                directive = self._read_directive(
                    match.group('name').lower(),
                    (match.group('argument') or '').strip(),
                    line,
                    scanner,
                )
                nodes.extend(self._dispatch(directive, state, context))
                continue

            if line.stripped.startswith('..'):
                scanner.advance()
                scanner.read_block(line.indent)
                continue

            if (heading := self._read_heading(scanner)) is not None:
                state.heading = heading or state.heading
                continue

            if context.in_step and (marker := LIST_MARKER_PATTERN.match(line.stripped)):
                substeps += 1
                nodes.append(self._parse_substep(line, marker, substeps, scanner, state, context))
                continue

            nodes.extend(self._parse_paragraph(scanner, context))

        return nodes

    def _read_directive(self, name: str, argument: str, line: Line,
                        scanner: LineScanner) -> Directive:
        """Read the options and body of a directive.

        Raises:
            ParseError: If an option of the directive follows its content.
        """
        block = scanner.read_block(line.indent)
        options: dict[str, str] = {}

        position = 0
        while position < len(block) and (match := OPTION_PATTERN.match(block[position].stripped)):
            options[match.group('key').lower()] = (match.group('value') or '').strip()
            position += 1

        body = block[position:]
        known = DIRECTIVE_OPTIONS.get(self._canonical_name(name), frozenset())
        baseline = min((item.indent for item in block if not item.blank), default=0)

        for item in body:
            if item.blank or item.indent != baseline:
                continue
            if (match := OPTION_PATTERN.match(item.stripped)) and match.group('key').lower() in known:
                raise ParseError.at(
                    f'Option :{match.group("key")}: of {name} appears after directive content',
                    item.location(),
                    suggestion='move options directly below the directive line',
                )

        return Directive(name, argument, options, body, line)

    @staticmethod
    def _canonical_name(name: str) -> str:
        """Map directive aliases to the name options are declared under."""
        if name in CODE_DIRECTIVES:
            return 'code-block'
        if name in LITERAL_INCLUDE_DIRECTIVES:
            return 'literal-include'
        if name.startswith('tabs-') and name not in IGNORED_DIRECTIVES:
            return 'tabs'

        return name

    def _dispatch(self, directive: Directive, state: DocumentState,
                  context: BlockContext) -> list['ContentNode']:
        """Parse a directive into content nodes."""
        name = self._canonical_name(directive.name)

        if handler := self._handlers.get(name):
            return handler(directive, state, context)

        if name == 'code-block' and directive.name == 'input' and directive.argument:
            return [self._parse_literal_include(directive, state, context)]

        if name == 'code-block':
            return [self._parse_code(directive, context)]

        if name == 'literal-include':
            return [self._parse_literal_include(directive, state, context)]

        if name in IGNORED_DIRECTIVES:
            return []

        if name in REQUIREMENT_DIRECTIVES:
            logger.debug('Ignoring {} requirement outside prerequisites at {}',
                         name, directive.line.location())
            return []

        return self._parse_block(LineScanner(directive.body), state, context)

    @staticmethod
    def _read_heading(scanner: LineScanner) -> str | None:
        """Consume a section heading or transition under the cursor.

        Returns:
            Heading text, or None when no heading was consumed.
        """
        line = scanner.peek()
        following = scanner.peek(1)
        if line is None:
            return None

        if ADORNMENT_PATTERN.match(line.stripped):
            after = scanner.peek(2)
            if (following is not None and not following.blank
                    and after is not None and ADORNMENT_PATTERN.match(after.stripped)):
                for _ in range(3):
                    scanner.advance()
                return following.stripped
            scanner.advance()
            return ''

        if (following is not None and following.indent == line.indent
                and ADORNMENT_PATTERN.match(following.stripped)
                and len(following.stripped) >= len(line.stripped)):
            scanner.advance()
            scanner.advance()
            return line.stripped

        return None

    def _parse_paragraph(self, scanner: LineScanner,
                         context: BlockContext) -> list['ContentNode']:
        """Parse a paragraph and a literal block it may introduce."""
        first = scanner.advance()
        lines = [first]

        while (line := scanner.peek()) is not None and not line.blank:
            if DIRECTIVE_PATTERN.match(line.stripped):
                break
            if context.in_step and line.indent <= first.indent and LIST_MARKER_PATTERN.match(line.stripped):
                break
            lines.append(scanner.advance())

        text = ' '.join(line.stripped for line in lines)
        location = first.location()

        literal = text.endswith('::')
        if literal:
            text = text[:-1].rstrip(':').rstrip() + (':' if text[:-2].strip() else '')

        nodes: list[ContentNode] = []
        if text:
            actions = context.extractor.paragraph(text, location) if context.extractor else ()
            nodes.append(ParagraphNode(text=text, location=location, actions=actions))

        if literal and (block := scanner.read_block(first.indent)):
            code = dedent_lines(block)
            block_location = block[0].location()
            action = None
            if context.extractor:
                action = context.extractor.code_block('undefined', code, block_location)
            nodes.append(CodeBlockNode(
                code=code,
                location=block_location,
                action=action,
            ))

        return nodes

    def _parse_substep(self, line: Line, marker: 'Match[str]', number: int,
                       scanner: LineScanner, state: DocumentState,
                       context: BlockContext) -> SubStepNode:
        """Parse an ordered list item at the top level of a step."""
        scanner.advance()

        label = marker.group('marker')
        offset = len(label) + 1 + len(marker.group('space'))
        first = Line(
            ' ' * (line.indent + offset) + marker.group('text'),
            line.filename,
            line.number,
        )
        body = [first, *scanner.read_block(line.indent)]

        children = self._parse_block(
            LineScanner(body),
            state,
            replace(context, in_step=False),
        )

        return SubStepNode(
            number=number,
            style='alpha' if label.isalpha() else 'numeric',
            children=tuple(children),
            location=line.location(),
        )

    def _parse_procedure(self, directive: Directive, state: DocumentState,
                         context: BlockContext) -> list['ContentNode']:
        """Parse a procedure into the document's procedure list."""
        title = (
            directive.options.get('title')
            or directive.argument
            or state.heading
            or f'Procedure {len(state.procedures) + 1}'
        )

        prerequisites = state.pending_prerequisites
        state.pending_prerequisites = None

        saved = state.step_count, state.procedure_prerequisites
        state.step_count, state.procedure_prerequisites = 0, []

        children = self._parse_block(
            LineScanner(directive.body),
            state,
            replace(context, in_procedure=True, in_step=False, extractor=ActionExtractor()),
        )

        for node in state.procedure_prerequisites:
            prerequisites = node if prerequisites is None else prerequisites.merge(node)

        state.step_count, state.procedure_prerequisites = saved

        state.procedures.append(ProcedureNode(
            title=title,
            children=tuple(children),
            prerequisites=prerequisites,
            tutorial=context.tutorial,
            location=directive.line.location(),
        ))

        return []

    def _parse_step(self, directive: Directive, state: DocumentState,
                    context: BlockContext) -> list['ContentNode']:
        """Parse a step; outside a procedure its content is kept inline."""
        inner = replace(context, in_step=context.in_procedure, extractor=ActionExtractor())
        children = self._parse_block(LineScanner(directive.body), state, inner)

        if not context.in_procedure:
            return children

        state.step_count += 1

        return [StepNode(
            number=state.step_count,
            headline=directive.options.get('title') or directive.argument or None,
            children=tuple(children),
            location=directive.line.location(),
        )]

    def _parse_tabs(self, directive: Directive, state: DocumentState,
                    context: BlockContext) -> list['ContentNode']:
        """Parse a group of tabs.

        Raises:
            ParseError: If two tabs of the group share an identifier.
        """
        group = directive.name.removeprefix('tabs').removeprefix('-') or 'default'
        scanner = LineScanner(directive.body)
        tabs: list[TabNode] = []

        while (line := scanner.peek()) is not None:
            scanner.advance()
            match = DIRECTIVE_PATTERN.match(line.stripped)
            if line.blank or not match:
                continue

            tab = self._read_directive(
                match.group('name').lower(),
                (match.group('argument') or '').strip(),
                line,
                scanner,
            )
            if tab.name != 'tab':
                continue

            identifier = tab.options.get('tabid') or slugify(tab.argument) or f'tab-{len(tabs) + 1}'
            if any(item.identifier == identifier for item in tabs):
                raise ParseError.at(
                    f'Duplicate tab identifier {identifier!r} in tabs group {group!r}',
                    line.location(),
                    suggestion='give each tab a distinct :tabid:',
                )

            extractor = context.extractor.fork() if context.extractor else None
            children = self._parse_block(
                LineScanner(tab.body),
                state,
                replace(context, extractor=extractor),
            )
            tabs.append(TabNode(
                identifier=identifier,
                title=tab.argument or identifier,
                children=tuple(children),
                location=line.location(),
            ))

        if context.extractor:
            context.extractor.settle()

        return [TabsNode(
            group=group,
            tabs=tuple(tabs),
            location=directive.line.location(),
        )]

    def _parse_orphan_tab(self, directive: Directive, state: DocumentState,
                          context: BlockContext) -> list['ContentNode']:
        """Keep the content of a tab found outside a tabs group inline."""
        return self._parse_block(LineScanner(directive.body), state, context)

    def _parse_tutorial(self, directive: Directive, state: DocumentState,
                        context: BlockContext) -> list['ContentNode']:
        """Parse a composable tutorial; its content is kept inline."""
        options = split_list(directive.options.get('options'))
        identifier = (
            slugify(directive.argument)
            or '-'.join(slugify(item) for item in options)
            or 'tutorial'
        )

        known = {tutorial.identifier for tutorial in state.tutorials}
        if identifier in known:
            identifier = f'{identifier}-{len(state.tutorials) + 1}'

        state.tutorials.append(ComposableTutorialNode(
            identifier=identifier,
            options=options,
            defaults=split_list(directive.options.get('defaults')),
            location=directive.line.location(),
        ))

        return self._parse_block(
            LineScanner(directive.body),
            state,
            replace(context, tutorial=identifier),
        )

    def _parse_selected_content(self, directive: Directive, state: DocumentState,
                                context: BlockContext) -> list['ContentNode']:
        """Parse content shown for one selection of a composable tutorial."""
        extractor = context.extractor.fork() if context.extractor else None
        children = self._parse_block(
            LineScanner(directive.body),
            state,
            replace(context, extractor=extractor),
        )

        return [SelectedContentNode(
            tutorial=context.tutorial or '',
            selections=split_list(directive.options.get('selections')),
            children=tuple(children),
            location=directive.line.location(),
        )]

    def _parse_code(self, directive: Directive, context: BlockContext) -> CodeBlockNode:
        """Parse a code block.

        Raises:
            ParseError: If the block has no content.
        """
        code = dedent_lines(directive.body)
        if not code.strip():
            raise ParseError.at(
                f'{directive.name} has no content',
                directive.line.location(),
                suggestion='indent the code under the directive',
            )

        return self._code_node(
            normalize_language(directive.argument or directive.options.get('language')),
            code,
            directive,
            context,
        )

    def _parse_literal_include(self, directive: Directive, state: DocumentState,
                               context: BlockContext) -> CodeBlockNode:
        """Parse a code block whose content comes from a file.

        Raises:
            ParseError: If the file can not be found or yields no content.
        """
        location = directive.line.location()
        path, text = self.includes.read(directive.argument, location, base_dir=state.base_dir)

        if start := directive.options.get('start-after'):
            _, found, rest = text.partition(start)
            if found:
                text = rest.split('\n', 1)[1] if '\n' in rest else ''
        if end := directive.options.get('end-before'):
            text, found, _ = text.partition(end)
            if found:
                text = text.rsplit('\n', 1)[0]

        lines = split_lines(text, str(path))
        if (dedent := directive.options.get('dedent')) and dedent.isdigit():
            width = int(dedent)
            code = '\n'.join(line.text[min(width, line.indent):] for line in lines).strip('\n')
        else:
            code = dedent_lines(lines)

        if not code.strip():
            raise ParseError.at(
                f'Included file {directive.argument} has no content',
                location,
                suggestion='check the include path and the start-after/end-before markers',
            )

        language = directive.options.get('language')
        return self._code_node(
            normalize_language(language) if language else language_from_path(str(path)),
            code,
            directive,
            context,
            source=str(path),
        )

    @staticmethod
    def _code_node(language: str, code: str, directive: Directive,
                   context: BlockContext, *, source: str | None = None) -> CodeBlockNode:
        """Build a code block node and classify its action."""
        location = directive.line.location()
        caption = directive.options.get('caption') or None
        copyable = parse_flag(directive.options.get('copyable'), default=True)

        action = None
        if context.extractor:
            action = context.extractor.code_block(
                language,
                code,
                location,
                caption=caption,
                copyable=copyable,
            )

        return CodeBlockNode(
            language=language,
            code=code,
            caption=caption,
            copyable=copyable,
            source=source,
            location=location,
            action=action,
        )

    def _parse_prerequisites(self, directive: Directive, state: DocumentState,
                             context: BlockContext) -> list['ContentNode']:
        """Parse a prerequisites block.

        Inside a procedure the requirements apply to it; outside, they
        apply to the next procedure of the document.
        """
        requirements: list[Requirement] = []
        scanner = LineScanner(directive.body)

        while (line := scanner.peek()) is not None:
            scanner.advance()
            if line.blank:
                continue

            if match := DIRECTIVE_PATTERN.match(line.stripped):
                item = self._read_directive(
                    match.group('name').lower(),
                    (match.group('argument') or '').strip(),
                    line,
                    scanner,
                )
                if requirement := self._requirement(item):
                    requirements.append(requirement)
                continue

            if line.stripped.startswith(('- ', '* ')):
                text = ' '.join([
                    line.stripped[2:].strip(),
                    *(item.stripped for item in scanner.read_block(line.indent) if not item.blank),
                ])
                requirements.append(ConfigurationRequirement(
                    description=text,
                    location=line.location(),
                ))

        node = PrerequisiteNode(
            requirements=tuple(requirements),
            location=directive.line.location(),
        )

        if state.procedure_prerequisites is not None and context.in_procedure:
            state.procedure_prerequisites.append(node)
        elif state.pending_prerequisites is not None:
            state.pending_prerequisites = state.pending_prerequisites.merge(node)
        else:
            state.pending_prerequisites = node

        return []

    @staticmethod
    def _requirement(directive: Directive) -> 'Requirement | None':
        """Build a requirement from a requirement directive."""
        options = directive.options
        text = ' '.join(line.stripped for line in directive.body if not line.blank)
        optional = parse_flag(options.get('optional'))
        location = directive.line.location()
        argument = directive.argument

        match directive.name:
            case 'software':
                version = options.get('version') or None
                return SoftwareRequirement(
                    name=argument,
                    version=version,
                    check=options.get('check') or None,
                    description=options.get('description') or text or ' '.join(filter(None, (argument, version))),
                    optional=optional,
                    location=location,
                )
            case 'environment':
                return EnvironmentRequirement(
                    variable=argument,
                    description=options.get('description') or text or f'{argument} is set',
                    optional=optional,
                    location=location,
                )
            case 'service':
                return ServiceRequirement(
                    name=argument,
                    check=options.get('check') or None,
                    path=options.get('file') or None,
                    description=options.get('description') or text or argument,
                    optional=optional,
                    location=location,
                )
            case 'configuration':
                return ConfigurationRequirement(
                    path=options.get('file') or None,
                    description=options.get('description') or text or argument,
                    optional=optional,
                    location=location,
                )

        return None
