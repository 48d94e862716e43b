"""Documentation parsing and variant expansion.

This module defines the front half of the pipeline: scanning source
lines, splicing includes, parsing directives into an immutable document
tree with classified actions, and expanding procedures with
mutually-exclusive content into linearized variants.

The primary public entry points are `DocumentParser`, which turns source
text into a `DocumentAST`, and `expand`, which turns a procedure into
its `ProcedureVariant` list.
"""

from .extraction import ActionExtractor, scan_references
from .includes import IncludeResolver
from .parser import DocumentParser
from .scanner import Line, LineScanner
from .variants import expand, expand_document

__all__ = (
    'ActionExtractor',
    'DocumentParser',
    'IncludeResolver',
    'Line',
    'LineScanner',
    'expand',
    'expand_document',
    'scan_references',
)
