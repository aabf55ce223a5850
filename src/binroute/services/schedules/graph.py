"""Index of the nodes routed in one schedule build."""

from __future__ import annotations

import math
from typing import Iterable

from ...models.domain import Node, NodeKind


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class GraphIndex:
    """Dense node list plus a reverse ``(kind, id) -> index`` lookup.

    Index 0 is always the depot. Built once per schedule build and discarded.
    """

    def __init__(self, nodes: Iterable[Node]) -> None:
        self._nodes: list[Node] = list(nodes)
        self._positions: dict[tuple[NodeKind, str], int] = {}
        for index, node in enumerate(self._nodes):
            if node.key in self._positions:
                raise ValueError(f"Duplicate node {node.kind.value}:{node.id} in routing graph.")
            self._positions[node.key] = index
        if self._nodes and self._nodes[0].kind is not NodeKind.DEPOT:
            raise ValueError("The first node of a routing graph must be the depot.")

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self):
        return iter(self._nodes)

    def node_at(self, index: int) -> Node:
        if index < 0:
            raise IndexError(index)
        return self._nodes[index]

    def index_of(self, kind: NodeKind, node_id: str) -> int | None:
        return self._positions.get((kind, node_id))

    def weights(self) -> list[int]:
        return [round_half_up(node.volume) for node in self._nodes]
