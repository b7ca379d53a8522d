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
Simulation regions: the closed set of region kinds and what the hanging-node
assembly needs to know about each of them.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Tuple

from .mesh import FVMNode, HangingNodeMap, MeshConsistencyError

logger = logging.getLogger('hanosim.region')


class RegionType(Enum):
    SEMICONDUCTOR = 'Semiconductor'
    INSULATOR = 'Insulator'
    ELECTRODE = 'Electrode'
    METAL = 'Metal'


class Variable(Enum):
    POTENTIAL = 'potential'
    ELECTRON = 'electron'
    HOLE = 'hole'
    TEMPERATURE = 'temperature'


# Base variables of each region kind, in node-block order
REGION_VARIABLES: Dict[RegionType, Tuple[Variable, ...]] = {
    RegionType.SEMICONDUCTOR: (Variable.POTENTIAL, Variable.ELECTRON, Variable.HOLE),
    RegionType.INSULATOR: (Variable.POTENTIAL,),
    RegionType.ELECTRODE: (Variable.POTENTIAL,),
    RegionType.METAL: (Variable.POTENTIAL,),
}

DENSITY_VARIABLES = (Variable.ELECTRON, Variable.HOLE)


@dataclass
class SimulationRegion:
    """
    One material region with its own node set and DOF block layout.

    Parameters
    ----------
    name : str
        Region label, used in diagnostics.
    region_type : RegionType
        Kind of region; fixes the base variables.
    nodes : Mapping[int, FVMNode]
        Region nodes (owned and ghost) keyed by mesh node id.
    hanging_nodes : HangingNodeMap, optional
        Hanging nodes of the current mesh state.
    enable_Tl : bool, optional
        Append the lattice temperature to the node block (default False).
    """
    name: str
    region_type: RegionType
    nodes: Mapping[int, FVMNode]
    hanging_nodes: HangingNodeMap = field(default_factory=HangingNodeMap)
    enable_Tl: bool = False

    def __post_init__(self):
        if not isinstance(self.region_type, RegionType):
            self.region_type = RegionType(self.region_type)
        variables = REGION_VARIABLES[self.region_type]
        if self.enable_Tl:
            variables = variables + (Variable.TEMPERATURE,)
        self._variables = variables
        self._offsets = {var: i for i, var in enumerate(variables)}

    @property
    def variables(self) -> Tuple[Variable, ...]:
        return self._variables

    @property
    def node_dofs(self) -> int:
        return len(self._variables)

    @property
    def has_hanging_node(self) -> bool:
        return bool(self.hanging_nodes)

    def variable_offset(self, var: Variable) -> int:
        """Slot of ``var`` inside the node block.

        Raises
        ------
        KeyError
            If the region does not carry ``var``.
        """
        try:
            return self._offsets[var]
        except KeyError:
            raise KeyError(f"Region '{self.name}' ({self.region_type.value}) "
                           f"has no variable {var.value}") from None

    def fvm_node(self, node_id: int) -> FVMNode:
        node = self.nodes.get(node_id)
        if node is None:
            msg = f"Node {node_id} not found in region '{self.name}'"
            logger.error(msg)
            raise MeshConsistencyError(msg)
        return node

    def owned_nodes(self, processor_id: int):
        return [n for n in self.nodes.values() if n.processor_id == processor_id]
