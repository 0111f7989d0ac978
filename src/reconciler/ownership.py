# src/reconciler/ownership.py — v1
"""Parent → child ownership relation maintained by the reconciler.

Nodes are (kind, namespace, name) triples; an edge parent → child records
that the parent's reconcile produced the child. Cascade deletion itself is
done by the store through owner references; this graph answers "who owns
this child" for event routing and flags two parents claiming one child.
"""

from __future__ import annotations

import logging

import networkx as nx

from seqctl.core.models import Resource

logger = logging.getLogger(__name__)

NodeId = tuple[str, str, str]


def node_id(obj: Resource) -> NodeId:
    return (obj.KIND, obj.metadata.namespace, obj.metadata.name)


class OwnershipGraph:
    """Directed parent → child relation backed by a networkx DiGraph."""

    def __init__(self) -> None:
        self._graph = nx.DiGraph()

    def record(self, parent: NodeId, child: NodeId) -> bool:
        """Record that ``parent`` owns ``child``.

        Returns False, and leaves the existing edge in place, when the child
        is already owned by another parent.
        """
        owners = list(self._graph.predecessors(child)) if child in self._graph else []
        others = [p for p in owners if p != parent]
        if others:
            logger.warning(
                "Child %s/%s/%s is claimed by %s but already owned by %s",
                *child, "/".join(parent), "/".join(others[0]),
            )
            return False
        self._graph.add_edge(parent, child)
        return True

    def owner_of(self, child: NodeId) -> NodeId | None:
        if child not in self._graph:
            return None
        owners = list(self._graph.predecessors(child))
        return owners[0] if owners else None

    def children_of(self, parent: NodeId) -> list[NodeId]:
        if parent not in self._graph:
            return []
        return sorted(self._graph.successors(parent))

    def forget(self, parent: NodeId) -> None:
        """Drop a parent and every child only it owned."""
        for child in self.children_of(parent):
            if self._graph.in_degree(child) == 1:
                self._graph.remove_node(child)
        if parent in self._graph:
            self._graph.remove_node(parent)

    def __contains__(self, node: NodeId) -> bool:
        return node in self._graph

    def __len__(self) -> int:
        return self._graph.number_of_edges()
