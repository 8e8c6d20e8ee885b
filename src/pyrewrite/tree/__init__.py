"""Node Model, parser, queries and code generation.

Public API:
    parse_source(source, file_path="<string>") -> Module
    parse_file(path, encoding="utf-8") -> Module
    unparse(node, mode="lenient") -> str
"""

from __future__ import annotations

from pyrewrite.tree.builder import (
    ParsedSource,
    TreeBuilder,
    parse_expression,
    parse_file,
    parse_source,
    parse_statements,
)
from pyrewrite.tree.nodes import Module
from pyrewrite.tree.snippets import SnippetGenerator
from pyrewrite.tree.types import (
    AssignmentInfo,
    AstNodeRef,
    CallSite,
    ImportInfo,
    NodeKind,
    SourceLocation,
    TryExceptInfo,
)
from pyrewrite.tree.unparse import RenderMode, Unparser, unparse

__all__ = [
    "AssignmentInfo",
    "AstNodeRef",
    "CallSite",
    "ImportInfo",
    "Module",
    "NodeKind",
    "ParsedSource",
    "RenderMode",
    "SnippetGenerator",
    "SourceLocation",
    "TreeBuilder",
    "TryExceptInfo",
    "Unparser",
    "parse_expression",
    "parse_file",
    "parse_source",
    "parse_statements",
    "unparse",
]
