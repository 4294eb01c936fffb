"""
Parent/child ordering for hierarchical catalog entities.

Categories reference their parent by source ID. Creating them on another
site requires every parent to exist before its children, so entities are
emitted in breadth-first topological order over the parent→children graph
of one language slice.
"""

import logging
from collections import deque
from typing import Any, Deque, Dict, List

logger = logging.getLogger(__name__)


def parent_id_of(entity: Dict[str, Any]) -> int:
    try:
        return int(entity.get('parent') or 0)
    except (TypeError, ValueError):
        return 0


def order_parents_first(entities: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Order entities so that every parent precedes its children.

    Roots are entities without a parent or whose parent is not part of the
    slice. Siblings keep their original relative order. Entities that are
    only reachable through a parent cycle are appended at the end.

    Args:
        entities: One language's entities

    Returns:
        New list in breadth-first parent-first order
    """
    by_id: Dict[int, Dict[str, Any]] = {}
    for entity in entities:
        by_id.setdefault(int(entity['id']), entity)

    children: Dict[int, List[Dict[str, Any]]] = {}
    roots: List[Dict[str, Any]] = []
    for entity in entities:
        parent = parent_id_of(entity)
        if parent and parent in by_id and parent != int(entity['id']):
            children.setdefault(parent, []).append(entity)
        else:
            roots.append(entity)

    ordered: List[Dict[str, Any]] = []
    visited = set()
    queue: Deque[Dict[str, Any]] = deque(roots)
    while queue:
        entity = queue.popleft()
        entity_id = int(entity['id'])
        if entity_id in visited:
            continue
        visited.add(entity_id)
        ordered.append(entity)
        queue.extend(children.get(entity_id, []))

    leftovers = [entity for entity in entities if int(entity['id']) not in visited]
    if leftovers:
        logger.warning(
            f"{len(leftovers)} entities form a parent cycle; processing them last: "
            f"{[entity.get('slug') for entity in leftovers]}"
        )
        for entity in leftovers:
            if int(entity['id']) not in visited:
                visited.add(int(entity['id']))
                ordered.append(entity)

    return ordered


def order_children_first(entities: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Reverse of ``order_parents_first``: every child precedes its parent."""
    return list(reversed(order_parents_first(entities)))


__all__ = ['order_parents_first', 'order_children_first', 'parent_id_of']
