"""Source parsing: structural summaries of source units."""

from testsmith.parsing.schemas import OperationInfo, StructuralSummary
from testsmith.parsing.tree_sitter_parser import (
    TreeSitterSourceParser,
    categorize_return,
)

__all__ = [
    "OperationInfo",
    "StructuralSummary",
    "TreeSitterSourceParser",
    "categorize_return",
]
