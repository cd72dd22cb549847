"""
Static placement of mesh-bearing nodes across LOD tiers.
"""

from typing import Dict, List, Sequence
import logging

import numpy as np

from ..core.errors import ConversionError
from ..core.types import NodeTransform
from ..scene.raw import RawNode, RawScene

logger = logging.getLogger(__name__)


def _mesh_nodes(root: RawNode):
    """Yield (node, node_to_model) for every node that carries meshes, in pre-order."""
    to_model: Dict[int, np.ndarray] = {}
    for node, parent in root.walk():
        node_to_model = np.asarray(node.transform, dtype=np.float64)
        if parent is not None:
            node_to_model = to_model[id(parent)] @ node_to_model
        to_model[id(node)] = node_to_model
        if node.mesh_indices:
            yield node, node_to_model


def collect_node_transforms(scenes: Sequence[RawScene]) -> List[NodeTransform]:
    """
    Collect the model-space transform of every mesh-bearing node at every LOD.

    Nodes are created from LOD 0; nodes of other tiers are matched by name.

    Args:
        scenes: One raw scene per LOD tier

    Returns:
        Node transforms in LOD-0 pre-order

    Raises:
        ConversionError: If a mesh-bearing node of an LOD > 0 has no LOD-0 counterpart
    """
    num_lods = len(scenes)
    nodes: List[NodeTransform] = []
    by_name: Dict[str, NodeTransform] = {}

    for node, transform in _mesh_nodes(scenes[0].root):
        entry = NodeTransform(
            name=node.name,
            mesh_indices=list(node.mesh_indices),
            lod_transforms=[transform] + [None] * (num_lods - 1),
        )
        nodes.append(entry)
        by_name.setdefault(node.name, entry)

    for lod in range(1, num_lods):
        for node, transform in _mesh_nodes(scenes[lod].root):
            entry = by_name.get(node.name)
            if entry is None:
                raise ConversionError(f"Node '{node.name}' of LOD {lod} has no LOD 0 counterpart")
            entry.lod_transforms[lod] = transform

    for entry in nodes:
        for lod in range(1, num_lods):
            if entry.lod_transforms[lod] is None:
                logger.warning(f"Node '{entry.name}' is missing from LOD {lod}, reusing LOD 0 placement")
                entry.lod_transforms[lod] = entry.lod_transforms[0]

    return nodes
