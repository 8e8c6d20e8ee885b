"""pyrewrite: query, refactor and re-render Python syntax trees.

Public API:
    Refactor.from_source(source) -> Refactor
    Refactor.from_file(path) -> Refactor
    parse_source(source) -> Module
    unparse(node, mode="lenient") -> str
"""

from __future__ import annotations

from pyrewrite.errors import OperationError, ParseFailure, RewriteError, StructureError
from pyrewrite.refactor.changes import Change, ChangeKind
from pyrewrite.refactor.engine import Refactor
from pyrewrite.tree import (
    AstNodeRef,
    ImportInfo,
    Module,
    NodeKind,
    RenderMode,
    SnippetGenerator,
    Unparser,
    parse_file,
    parse_source,
    unparse,
)

__version__ = "0.3.0"

__all__ = [
    "AstNodeRef",
    "Change",
    "ChangeKind",
    "ImportInfo",
    "Module",
    "NodeKind",
    "OperationError",
    "ParseFailure",
    "Refactor",
    "RenderMode",
    "RewriteError",
    "SnippetGenerator",
    "StructureError",
    "Unparser",
    "parse_file",
    "parse_source",
    "unparse",
]
