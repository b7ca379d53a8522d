#
# Copyright 2026 Hannes Holey
#
# ### MIT License
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.
#
"""
Mesh-side data consumed by the hanging-node resolver.

The mesh itself (refinement, distribution, geometry) lives elsewhere; this
module only carries what the constraint assembly reads from it:

    ElemTopology      - side/edge node maps per element type
    Elem              - element with proxy side/edge node lookup
    FVMNode           - DOF block offsets and owning processor of a node
    HangingNodeRecord - (node, element, local side-or-edge index)
    HangingNodeMap    - ordered, read-only record tuples per category
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, Mapping, Tuple


class MeshConsistencyError(RuntimeError):
    """A mesh invariant the constraint assembly relies on does not hold."""


class ElemType(Enum):
    TRI3 = 'TRI3'
    QUAD4 = 'QUAD4'
    TET4 = 'TET4'
    HEX8 = 'HEX8'
    PRISM6 = 'PRISM6'


@dataclass(frozen=True)
class ElemTopology:
    """Local node numbering of the sides and edges of one element type.

    Attributes
    ----------
    n_nodes : int
        Number of element nodes.
    side_nodes_map : tuple of tuple of int
        Local element node indices of each side, in side-local order.
    edge_nodes_map : tuple of tuple of int
        Local element node indices of each edge. For 2D elements the
        edges are the sides.
    """
    n_nodes: int
    side_nodes_map: Tuple[Tuple[int, ...], ...]
    edge_nodes_map: Tuple[Tuple[int, ...], ...]


# libMesh orderings; quad faces are listed cyclically so that (0, 2) and
# (1, 3) are the face diagonals.
ELEM_TOPOLOGY: Dict[ElemType, ElemTopology] = {
    ElemType.TRI3: ElemTopology(
        n_nodes=3,
        side_nodes_map=((0, 1), (1, 2), (2, 0)),
        edge_nodes_map=((0, 1), (1, 2), (2, 0)),
    ),
    ElemType.QUAD4: ElemTopology(
        n_nodes=4,
        side_nodes_map=((0, 1), (1, 2), (2, 3), (3, 0)),
        edge_nodes_map=((0, 1), (1, 2), (2, 3), (3, 0)),
    ),
    ElemType.TET4: ElemTopology(
        n_nodes=4,
        side_nodes_map=((0, 2, 1), (0, 1, 3), (1, 2, 3), (2, 0, 3)),
        edge_nodes_map=((0, 1), (1, 2), (0, 2), (0, 3), (1, 3), (2, 3)),
    ),
    ElemType.HEX8: ElemTopology(
        n_nodes=8,
        side_nodes_map=((0, 3, 2, 1), (0, 1, 5, 4), (1, 2, 6, 5),
                        (2, 3, 7, 6), (3, 0, 4, 7), (4, 5, 6, 7)),
        edge_nodes_map=((0, 1), (1, 2), (2, 3), (0, 3), (0, 4), (1, 5),
                        (2, 6), (3, 7), (4, 5), (5, 6), (6, 7), (4, 7)),
    ),
    ElemType.PRISM6: ElemTopology(
        n_nodes=6,
        side_nodes_map=((0, 2, 1), (0, 1, 4, 3), (1, 2, 5, 4),
                        (2, 0, 3, 5), (3, 4, 5)),
        edge_nodes_map=((0, 1), (1, 2), (0, 2), (0, 3), (1, 4), (2, 5),
                        (3, 4), (4, 5), (3, 5)),
    ),
}


@dataclass(frozen=True)
class Elem:
    """An element given by its type and global mesh node ids.

    Sides and edges are not stored; ``side_nodes`` / ``edge_nodes`` map the
    side-local numbering onto the parent's nodes on demand.
    """
    id: int
    type: ElemType
    nodes: Tuple[int, ...]

    def __post_init__(self):
        topo = ELEM_TOPOLOGY.get(self.type)
        if topo is None:
            raise MeshConsistencyError(f"Unknown element type {self.type!r}")
        if len(self.nodes) != topo.n_nodes:
            raise MeshConsistencyError(
                f"Element {self.id} of type {self.type.value} needs "
                f"{topo.n_nodes} nodes, got {len(self.nodes)}")

    @property
    def topology(self) -> ElemTopology:
        return ELEM_TOPOLOGY[self.type]

    @property
    def n_sides(self) -> int:
        return len(self.topology.side_nodes_map)

    @property
    def n_edges(self) -> int:
        return len(self.topology.edge_nodes_map)

    def side_nodes(self, side: int) -> Tuple[int, ...]:
        """Mesh node ids of side ``side`` in side-local order."""
        if not 0 <= side < self.n_sides:
            raise MeshConsistencyError(
                f"Element {self.id} ({self.type.value}) has no side {side}")
        return tuple(self.nodes[i] for i in self.topology.side_nodes_map[side])

    def edge_nodes(self, edge: int) -> Tuple[int, ...]:
        """Mesh node ids of edge ``edge`` in edge-local order."""
        if not 0 <= edge < self.n_edges:
            raise MeshConsistencyError(
                f"Element {self.id} ({self.type.value}) has no edge {edge}")
        return tuple(self.nodes[i] for i in self.topology.edge_nodes_map[edge])


@dataclass(frozen=True)
class FVMNode:
    """DOF block of one mesh node inside a region.

    Attributes
    ----------
    node_id : int
        Global mesh node id.
    global_offset : int
        First row/column of the node block in the global system.
    local_offset : int
        First position of the node block in the local (owned + ghost) array.
    processor_id : int
        Rank owning the node.
    """
    node_id: int
    global_offset: int
    local_offset: int
    processor_id: int = 0


@dataclass(frozen=True)
class HangingNodeRecord:
    """A hanging node and the coarse element side/edge it sits on."""
    node: int
    elem: Elem
    local_index: int


@dataclass(frozen=True)
class HangingNodeMap:
    """Hanging nodes of the current mesh state, split by location.

    Both categories are plain tuples: finite, restartable and read-only.
    Rebuild the map (``from_mapping``) whenever the mesh changes.
    """
    on_side: Tuple[HangingNodeRecord, ...] = field(default_factory=tuple)
    on_edge: Tuple[HangingNodeRecord, ...] = field(default_factory=tuple)

    @classmethod
    def from_mapping(cls,
                     on_side: Mapping[int, Tuple[Elem, int]] = None,
                     on_edge: Mapping[int, Tuple[Elem, int]] = None) -> "HangingNodeMap":
        """Build the map from ``{node: (elem, local_index)}`` dictionaries."""
        def records(mapping):
            if not mapping:
                return tuple()
            return tuple(HangingNodeRecord(node, elem, idx)
                         for node, (elem, idx) in sorted(mapping.items(), key=lambda kv: kv[0]))

        return cls(on_side=records(on_side), on_edge=records(on_edge))

    @property
    def has_side_hanging_node(self) -> bool:
        return len(self.on_side) > 0

    @property
    def has_edge_hanging_node(self) -> bool:
        return len(self.on_edge) > 0

    def __bool__(self) -> bool:
        return self.has_side_hanging_node or self.has_edge_hanging_node

    def __len__(self) -> int:
        return len(self.on_side) + len(self.on_edge)

    def __iter__(self) -> Iterator[HangingNodeRecord]:
        yield from self.on_side
        yield from self.on_edge


def renumber_nodes(node_ids: Iterable[int], nb_dofs: int,
                   processor_id: int = 0, start: int = 0) -> Dict[int, FVMNode]:
    """Serial helper: contiguous node blocks of ``nb_dofs`` starting at ``start``.

    Global and local offsets coincide, which is the layout of a single-process run.
    """
    nodes = {}
    offset = start
    for node_id in node_ids:
        nodes[node_id] = FVMNode(node_id, offset, offset, processor_id)
        offset += nb_dofs
    return nodes
