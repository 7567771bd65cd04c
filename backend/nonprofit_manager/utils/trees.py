"""Helpers for self-referencing parent/child hierarchies.

Categories, inventory categories, locations and buildings all point at
their parent through a nullable id column. These helpers build nested
trees from flat rows and guard against cycles when re-parenting.
"""

from typing import Callable, Dict, List, Optional


def build_tree(rows: list, to_node: Callable[[object], dict], parent_attr: str = "parent_id") -> List[dict]:
    """Nest `rows` under their parents.

    `to_node` converts a row into a dict; each node gets a `children`
    list. Rows whose parent is not among `rows` (archived or inactive)
    are treated as roots. Input order is preserved within each level.
    """
    nodes: Dict[int, dict] = {}
    for row in rows:
        node = to_node(row)
        node["children"] = []
        nodes[row.id] = node
    roots = []
    for row in rows:
        parent_id = getattr(row, parent_attr)
        if parent_id is not None and parent_id in nodes:
            nodes[parent_id]["children"].append(nodes[row.id])
        else:
            roots.append(nodes[row.id])
    return roots


def is_descendant_of(node_id: int, candidate_parent_id: int, get_parent_id: Callable[[int], Optional[int]]) -> bool:
    """Return True when `candidate_parent_id` is `node_id` or lies below it.

    Walks up from the candidate parent through `get_parent_id`. A node
    counts as its own descendant, so self-parenting is rejected too.
    """
    seen = set()
    current: Optional[int] = candidate_parent_id
    while current is not None:
        if current == node_id:
            return True
        if current in seen:
            # existing data already contains a loop
            return True
        seen.add(current)
        current = get_parent_id(current)
    return False


def depth_of(node_id: Optional[int], get_parent_id: Callable[[int], Optional[int]]) -> int:
    """Number of levels from the root down to `node_id` (root = 1)."""
    depth = 0
    seen = set()
    current = node_id
    while current is not None and current not in seen:
        seen.add(current)
        depth += 1
        current = get_parent_id(current)
    return depth
