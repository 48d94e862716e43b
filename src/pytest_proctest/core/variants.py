"""Variant expansion of procedures.

A procedure holding mutually-exclusive content (tabs, composable-tutorial
selections) describes several alternative procedures at once. Expansion
turns it into fully linearized variants, one per distinct identifier
offered by its exclusive groups:

- content outside exclusive groups is kept in every variant, in its
  original position;
- a tab or selection matching the variant identifier is replaced inline
  by its own content;
- every other tab or selection is dropped.

Steps and sub-steps of each variant are renumbered from 1.
"""

from typing import TYPE_CHECKING

from loguru import logger

from pytest_proctest.schema import (
    ProcedureVariant,
    SelectedContentNode,
    StepNode,
    SubStepNode,
    TabNode,
    TabsNode,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from pytest_proctest.schema import ContentNode, DocumentAST, ProcedureNode


def collect_identifiers(nodes: 'Sequence[ContentNode]',
                        found: dict[str, str] | None = None) -> dict[str, str]:
    """Collect variant identifiers offered by exclusive content groups.

    Args:
        nodes: Content nodes to walk.
        found: Identifiers collected so far.

    Returns:
        Variant identifiers mapped to their labels, in order of first
        appearance.
    """
    if found is None:
        found = {}

    for node in nodes:
        match node:
            case TabsNode():
                for tab in node.tabs:
                    found.setdefault(tab.identifier, tab.title)
                    collect_identifiers(tab.children, found)
            case TabNode():
                found.setdefault(node.identifier, node.title)
                collect_identifiers(node.children, found)
            case SelectedContentNode():
                if node.identifier:
                    found.setdefault(node.identifier, node.label)
                collect_identifiers(node.children, found)
            case StepNode() | SubStepNode():
                collect_identifiers(node.children, found)
            case _:
                pass

    return found


def select(nodes: 'Sequence[ContentNode]', identifier: str) -> tuple['ContentNode', ...]:
    """Linearize content for one variant.

    Args:
        nodes: Content nodes to filter.
        identifier: Variant identifier.

    Returns:
        Content with matching exclusive content spliced inline and
        everything else exclusive removed.
    """
    selected: list[ContentNode] = []

    for node in nodes:
        match node:
            case TabsNode():
                for tab in node.tabs:
                    if tab.identifier == identifier:
                        selected.extend(select(tab.children, identifier))
            case TabNode():
                if node.identifier == identifier:
                    selected.extend(select(node.children, identifier))
            case SelectedContentNode():
                if node.identifier == identifier:
                    selected.extend(select(node.children, identifier))
                else:
                    logger.debug('Omitting selection {!r} of {!r} for variant {!r}',
                                 node.label, node.tutorial, identifier)
            case StepNode() | SubStepNode():
                selected.append(node.model_copy(update={
                    'children': select(node.children, identifier),
                }))
            case _:
                selected.append(node)

    return tuple(selected)


def renumber(nodes: 'Sequence[ContentNode]') -> tuple[StepNode, ...]:
    """Renumber steps, and the sub-steps of each step, from 1.

    Args:
        nodes: Linearized procedure content.

    Returns:
        Steps of the content in document order.
    """
    steps: list[StepNode] = []

    for node in nodes:
        if not isinstance(node, StepNode):
            continue

        children: list[ContentNode] = []
        substeps = 0
        for child in node.children:
            if isinstance(child, SubStepNode):
                substeps += 1
                child = child.model_copy(update={'number': substeps})  # noqa: PLW2901
            children.append(child)

        steps.append(node.model_copy(update={
            'number': len(steps) + 1,
            'children': tuple(children),
        }))

    return tuple(steps)


def expand(procedure: 'ProcedureNode') -> list[ProcedureVariant]:
    """Expand a procedure into its variants.

    Args:
        procedure: Parsed procedure.

    Returns:
        A single variant equal to the procedure when it has no exclusive
        content, one variant per distinct identifier otherwise.
    """
    identifiers = collect_identifiers(procedure.children)

    if not identifiers:
        return [ProcedureVariant(
            title=procedure.title,
            steps=procedure.steps,
            prerequisites=procedure.prerequisites,
            location=procedure.location,
        )]

    variants = [
        ProcedureVariant(
            title=procedure.title,
            identifier=identifier,
            label=label,
            steps=renumber(select(procedure.children, identifier)),
            prerequisites=procedure.prerequisites,
            location=procedure.location,
        )
        for identifier, label in identifiers.items()
    ]

    logger.debug('Expanded procedure {!r} into {} variant(s)', procedure.title, len(variants))

    return variants


def expand_document(document: 'DocumentAST') -> list[ProcedureVariant]:
    """Expand every procedure of a document, in document order."""
    return [
        variant
        for procedure in document.procedures
        for variant in expand(procedure)
    ]
