from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Tuple

from .constants import HEADER_SIZE, U32_MAX, table_size
from .errors import FormatLimitError
from .scan import DirNode


@dataclass
class Placement:
    table_offset: int
    data_offset: int


@dataclass
class LayoutPlan:
    """Absolute offsets for every directory, computed before any byte is written."""

    root: DirNode
    data_base: int  # end of the table region; stored in the header
    data_end: int
    placements: Dict[DirNode, Placement] = field(default_factory=dict)

    def placement(self, node: DirNode) -> Placement:
        return self.placements[node]

    @property
    def table_bytes(self) -> int:
        return self.data_base - HEADER_SIZE

    @property
    def data_bytes(self) -> int:
        return self.data_end - self.data_base


def iter_preorder(root: DirNode) -> Iterator[DirNode]:
    """Yield `root`, then each subdirectory subtree in stored order.

    This is the one traversal order shared by both layout passes and the
    writer; tables and data are laid out in exactly this sequence.
    """
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.subdirs))


def assign_table_offsets(root: DirNode, start: int = HEADER_SIZE) -> Tuple[Dict[DirNode, int], int]:
    """Pass 1: table offset of every directory and the end of the table region."""
    offsets: Dict[DirNode, int] = {}
    cursor = start
    for node in iter_preorder(root):
        offsets[node] = cursor
        cursor += table_size(len(node.subdirs), len(node.files))
        if cursor > U32_MAX:
            raise FormatLimitError("table", f"Table section exceeds 4GB (directory '{node.source_path}').")
    return offsets, cursor


def assign_data_offsets(root: DirNode, base: int) -> Tuple[Dict[DirNode, int], int]:
    """Pass 2: data-section offset of every directory and the end of the data region."""
    offsets: Dict[DirNode, int] = {}
    cursor = base
    for node in iter_preorder(root):
        offsets[node] = cursor
        for fn in node.files:
            if fn.size > U32_MAX:
                raise FormatLimitError("file", f"File '{fn.source_path}' exceeds 4GB ({fn.size} bytes).")
            cursor += fn.size
            if cursor > U32_MAX:
                raise FormatLimitError("data", f"Data section exceeds 4GB (at file '{fn.source_path}').")
    return offsets, cursor


def plan_layout(root: DirNode) -> LayoutPlan:
    tables, data_base = assign_table_offsets(root)
    data, data_end = assign_data_offsets(root, data_base)
    plan = LayoutPlan(root=root, data_base=data_base, data_end=data_end)
    for node, t_off in tables.items():
        plan.placements[node] = Placement(table_offset=t_off, data_offset=data[node])
    return plan


def file_offsets(node: DirNode) -> List[int]:
    """Offsets of a directory's files relative to its data-section start."""
    rel: List[int] = []
    pos = 0
    for fn in node.files:
        rel.append(pos)
        pos += fn.size
    return rel
