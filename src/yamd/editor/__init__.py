"""Structural editing of parsed documents."""

from .store import DocumentStore
from .structural import (
    OPERATIONS,
    EditCode,
    EditResult,
    NodeChange,
    apply_edit,
    delete,
    edit_info,
    indent,
    move_down,
    move_up,
    outdent,
)

__all__ = [
    "OPERATIONS",
    "DocumentStore",
    "EditCode",
    "EditResult",
    "NodeChange",
    "apply_edit",
    "delete",
    "edit_info",
    "indent",
    "move_down",
    "move_up",
    "outdent",
]
