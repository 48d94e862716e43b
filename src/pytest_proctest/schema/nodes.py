"""Document tree produced by the directive parser.

The tree keeps only what matters for testing: procedures, their steps and
sub-steps, the content carrying testable actions, and the groups of
mutually-exclusive content (tabs and composable-tutorial selections)
that variant expansion resolves.

Content nodes form a tagged union discriminated by `node_type`. All nodes
are immutable; variant expansion builds new nodes rather than editing the
parsed tree.
"""

from collections.abc import Iterator
from string import ascii_lowercase
from typing import Annotated, Literal

from pydantic import Field

from pytest_proctest.models import SchemaModel
from pytest_proctest.names import slugify

from .actions import TestableAction  # noqa: TC001
from .locations import SourceLocation
from .prerequisites import PrerequisiteNode  # noqa: TC001


class ParagraphNode(SchemaModel):
    """Running text, possibly announcing UI interactions or links."""

    node_type: Literal['paragraph'] = 'paragraph'

    text: str
    location: SourceLocation = Field(default_factory=SourceLocation)

    actions: tuple[TestableAction, ...] = ()


class CodeBlockNode(SchemaModel):
    """A code block or a literal include."""

    node_type: Literal['code'] = 'code'

    language: str = 'undefined'
    code: str
    caption: str | None = None
    copyable: bool = True
    source: str | None = Field(
        default=None,
        description='Path of the included file for literal includes.',
    )
    location: SourceLocation = Field(default_factory=SourceLocation)

    action: TestableAction | None = None


class TabNode(SchemaModel):
    """One alternative of a tabs group."""

    node_type: Literal['tab'] = 'tab'

    identifier: str
    title: str
    children: tuple['ContentNode', ...] = ()
    location: SourceLocation = Field(default_factory=SourceLocation)


class TabsNode(SchemaModel):
    """A group of mutually-exclusive tabs."""

    node_type: Literal['tabs'] = 'tabs'

    group: str = Field(
        description='Group name, e.g. `platforms` for `tabs-platforms`.',
    )
    tabs: tuple[TabNode, ...] = ()
    location: SourceLocation = Field(default_factory=SourceLocation)

    @property
    def identifiers(self) -> tuple[str, ...]:
        """Identifiers offered by the group, in document order."""
        return tuple(tab.identifier for tab in self.tabs)


class SelectedContentNode(SchemaModel):
    """Content shown for one selection of a composable tutorial."""

    node_type: Literal['selected-content'] = 'selected-content'

    tutorial: str = Field(
        description='Identifier of the composable tutorial the block belongs to.',
    )
    selections: tuple[str, ...] = ()
    children: tuple['ContentNode', ...] = ()
    location: SourceLocation = Field(default_factory=SourceLocation)

    @property
    def identifier(self) -> str:
        """Identifier matching a procedure variant."""
        return '-'.join(slugify(item) for item in self.selections)

    @property
    def label(self) -> str:
        """Human-readable selection list."""
        return ', '.join(self.selections)


class ComposableTutorialNode(SchemaModel):
    """A tutorial whose content depends on a set of reader selections.

    Its procedures are collected into the document like any other; the
    node itself records the declared options and defaults.
    """

    node_type: Literal['composable-tutorial'] = 'composable-tutorial'

    identifier: str
    options: tuple[str, ...] = ()
    defaults: tuple[str, ...] = ()
    location: SourceLocation = Field(default_factory=SourceLocation)


class SubStepNode(SchemaModel):
    """An ordered list item at the top level of a step."""

    node_type: Literal['substep'] = 'substep'

    number: int = Field(ge=1)
    style: Literal['numeric', 'alpha'] = 'numeric'
    children: tuple['ContentNode', ...] = ()
    location: SourceLocation = Field(default_factory=SourceLocation)

    @property
    def label(self) -> str:
        """Rendered list marker without punctuation."""
        if self.style == 'alpha':
            return alpha_label(self.number)
        return str(self.number)

    @property
    def actions(self) -> tuple[TestableAction, ...]:
        """Actions of the sub-step in document order."""
        return tuple(iter_actions(self.children))


class StepNode(SchemaModel):
    """A step of a procedure."""

    node_type: Literal['step'] = 'step'

    number: int = Field(ge=1)
    headline: str | None = None
    children: tuple['ContentNode', ...] = ()
    location: SourceLocation = Field(default_factory=SourceLocation)

    @property
    def content(self) -> tuple['ContentNode', ...]:
        """Step content other than sub-steps."""
        return tuple(
            node for node in self.children
            if not isinstance(node, SubStepNode)
        )

    @property
    def substeps(self) -> tuple[SubStepNode, ...]:
        """Sub-steps in list order."""
        return tuple(
            node for node in self.children
            if isinstance(node, SubStepNode)
        )

    @property
    def actions(self) -> tuple[TestableAction, ...]:
        """Actions of the step itself, excluding its sub-steps."""
        return tuple(iter_actions(self.children))

    @property
    def title(self) -> str:
        """Step number with headline, for reports."""
        if self.headline:
            return f'{self.number}. {self.headline}'
        return f'{self.number}.'


#: Any content node, discriminated by `node_type`.
ContentNode = Annotated[
    ParagraphNode | CodeBlockNode | TabsNode | TabNode | SelectedContentNode | SubStepNode | StepNode,
    Field(discriminator='node_type'),
]


class ProcedureNode(SchemaModel):
    """A titled, ordered sequence of steps."""

    title: str
    children: tuple[ContentNode, ...] = ()
    prerequisites: PrerequisiteNode | None = None
    tutorial: str | None = Field(
        default=None,
        description='Identifier of the enclosing composable tutorial.',
    )
    location: SourceLocation = Field(default_factory=SourceLocation)

    @property
    def steps(self) -> tuple[StepNode, ...]:
        """All steps in document order, including alternative ones."""
        return tuple(iter_steps(self.children))


class Reference(SchemaModel):
    """An inline reference discovered while scanning lines."""

    kind: Literal['ref', 'doc', 'link', 'guilabel', 'substitution']
    target: str
    text: str | None = None
    location: SourceLocation = Field(default_factory=SourceLocation)


class DocumentAST(SchemaModel):
    """Root of a parsed source file."""

    filename: str = '<unicode string>'
    procedures: tuple[ProcedureNode, ...] = ()
    references: tuple[Reference, ...] = ()
    tutorials: tuple[ComposableTutorialNode, ...] = ()

    @property
    def urls(self) -> tuple[str, ...]:
        """Distinct external URLs in document order."""
        return tuple(dict.fromkeys(
            reference.target
            for reference in self.references
            if reference.kind == 'link'
        ))


class ProcedureVariant(SchemaModel):
    """One fully linearized version of a procedure.

    Holds only the steps of one choice among mutually-exclusive content,
    renumbered from 1, with all exclusive groups removed.
    """

    title: str
    identifier: str | None = Field(
        default=None,
        description='Variant identifier; None when the procedure has no alternatives.',
    )
    label: str | None = None
    steps: tuple[StepNode, ...] = ()
    prerequisites: PrerequisiteNode | None = None
    location: SourceLocation = Field(default_factory=SourceLocation)

    @property
    def name(self) -> str:
        """Title with the variant label, for reports."""
        if self.label:
            return f'{self.title} [{self.label}]'
        return self.title


def alpha_label(number: int) -> str:
    """Render 1, 2, ..., 26, 27 as a, b, ..., z, aa."""
    label = ''
    while number > 0:
        number, remainder = divmod(number - 1, len(ascii_lowercase))
        label = ascii_lowercase[remainder] + label
    return label


def iter_actions(nodes: tuple[ContentNode, ...]) -> Iterator[TestableAction]:
    """Yield actions of content nodes in document order.

    Steps and sub-steps are not descended into; their actions belong to
    them.

    Args:
        nodes: Content nodes to walk.

    Yields:
        Testable actions.
    """
    for node in nodes:
        match node:
            case ParagraphNode():
                yield from node.actions
            case CodeBlockNode():
                if node.action is not None:
                    yield node.action
            case TabsNode():
                for tab in node.tabs:
                    yield from iter_actions(tab.children)
            case TabNode() | SelectedContentNode():
                yield from iter_actions(node.children)
            case SubStepNode() | StepNode():
                pass


def iter_steps(nodes: tuple[ContentNode, ...]) -> Iterator[StepNode]:
    """Yield steps found among content nodes in document order."""
    for node in nodes:
        match node:
            case StepNode():
                yield node
            case TabsNode():
                for tab in node.tabs:
                    yield from iter_steps(tab.children)
            case TabNode() | SelectedContentNode():
                yield from iter_steps(node.children)
            case _:
                pass


for _model in (TabNode, SelectedContentNode, SubStepNode, StepNode):
    _model.model_rebuild()
