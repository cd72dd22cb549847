"""
Skeleton construction from bone bind matrices.

The joint hierarchy is derived from the scene's node tree:

1. every bone referenced by a mesh gets a model-space bind pose, decomposed
   from inverse(offset) composed with the mesh's node-to-model transform;
2. every ancestor of a bone-bearing node, up to the root, becomes a joint
   with an identity bind pose so the hierarchy stays connected;
3. joints are numbered in pre-order, so a parent's index is always smaller
   than any of its descendants'.

The node tree is flattened into an arena (node list plus parent-index
array) and processed iteratively.
"""

from dataclasses import replace
from typing import Dict, List, Tuple
import logging

import numpy as np
import torch

from ..core.constants import DEFAULT_EPS_NORM
from ..core.errors import SkeletonError
from ..core.types import Joint, DEFAULT_DTYPE, identity_real, zero_dual
from ..scene.raw import RawNode, RawScene
from ..utils.dual_quaternion import (
    decompose_matrix,
    dq_inverse,
    is_uniform_scale,
    matrix_to_dq,
)

logger = logging.getLogger(__name__)


BindPose = Tuple[torch.Tensor, torch.Tensor, float]


def flatten_hierarchy(root: RawNode) -> Tuple[List[RawNode], List[int]]:
    """
    Flatten a node tree into pre-order arrays.

    Args:
        root: Root node

    Returns:
        nodes: Nodes in pre-order
        parents: Parent index per node (-1 for the root)
    """
    nodes: List[RawNode] = []
    parents: List[int] = []
    index_of: Dict[int, int] = {}
    for node, parent in root.walk():
        index_of[id(node)] = len(nodes)
        nodes.append(node)
        parents.append(-1 if parent is None else index_of[id(parent)])
    return nodes, parents


def model_transforms(nodes: List[RawNode], parents: List[int]) -> List[np.ndarray]:
    """Accumulate node-to-model transforms over a pre-order arena."""
    world: List[np.ndarray] = []
    for node, parent in zip(nodes, parents):
        local = np.asarray(node.transform, dtype=np.float64)
        world.append(local if parent < 0 else world[parent] @ local)
    return world


def _collect_bind_poses(
    scene: RawScene,
    nodes: List[RawNode],
    world: List[np.ndarray]
) -> Dict[str, BindPose]:
    """Decompose the bind pose of every bone referenced by a mesh."""
    bind_poses: Dict[str, BindPose] = {}
    for node, mesh_to_model in zip(nodes, world):
        for mesh_index in node.mesh_indices:
            for bone in scene.meshes[mesh_index].bones:
                bone_to_model = mesh_to_model @ np.linalg.inv(np.asarray(bone.offset_matrix, dtype=np.float64))

                scale, _, _, _ = decompose_matrix(bone_to_model)
                if not is_uniform_scale(scale):
                    logger.warning(
                        f"Bone '{bone.name}' has non-uniform bind scale {scale.tolist()}, "
                        f"keeping {float(scale[0]):.6f}"
                    )

                bind_poses[bone.name] = matrix_to_dq(bone_to_model)
    return bind_poses


def build_skeleton(scene: RawScene) -> List[Joint]:
    """
    Build the joint table of a scene.

    Args:
        scene: LOD-0 raw scene

    Returns:
        Joints in pre-order; empty if no mesh carries bones

    Raises:
        SkeletonError: If a bone names a node that does not exist
    """
    nodes, parents = flatten_hierarchy(scene.root)
    world = model_transforms(nodes, parents)

    bind_poses = _collect_bind_poses(scene, nodes, world)
    if not bind_poses:
        return []

    node_names = {node.name for node in nodes}
    missing = sorted(name for name in bind_poses if name not in node_names)
    if missing:
        raise SkeletonError(f"Bones without hierarchy nodes: {missing}")

    # Mark bone-bearing nodes and every ancestor up to the root
    marked = [node.name in bind_poses for node in nodes]
    for i in range(len(nodes) - 1, 0, -1):
        if marked[i] and parents[i] >= 0:
            marked[parents[i]] = True

    joints: List[Joint] = []
    joint_of_node = [-1] * len(nodes)
    for i, node in enumerate(nodes):
        parent_node = parents[i]
        parent_joint = joint_of_node[parent_node] if parent_node >= 0 else -1
        if not marked[i]:
            joint_of_node[i] = parent_joint
            continue

        if node.name in bind_poses:
            bind_real, bind_dual, bind_scale = bind_poses[node.name]
        else:
            bind_real, bind_dual, bind_scale = identity_real(), zero_dual(), 1.0

        local_real, local_dual, local_scale = matrix_to_dq(node.transform)

        joint_of_node[i] = len(joints)
        joints.append(Joint(
            name=node.name,
            parent=parent_joint,
            bind_real=bind_real.to(DEFAULT_DTYPE),
            bind_dual=bind_dual.to(DEFAULT_DTYPE),
            bind_scale=bind_scale,
            local_real=local_real.to(DEFAULT_DTYPE),
            local_dual=local_dual.to(DEFAULT_DTYPE),
            local_scale=local_scale,
        ))

    logger.info(f"Built skeleton: {len(joints)} joints ({len(bind_poses)} with bone weights)")
    return joints


def joint_index_by_name(joints: List[Joint]) -> Dict[str, int]:
    return {joint.name: i for i, joint in enumerate(joints)}


def validate_hierarchy(joints: List[Joint]) -> None:
    """
    Check the pre-order invariant: every parent index is smaller than its child's.

    Raises:
        SkeletonError: If the invariant is broken
    """
    for i, joint in enumerate(joints):
        if joint.parent >= i or joint.parent < -1:
            raise SkeletonError(f"Joint '{joint.name}' ({i}) has invalid parent {joint.parent}")


def finalize_joints(joints: List[Joint]) -> List[Joint]:
    """
    Fill the inverse bind pose of every joint.

    Returns:
        New joint list with inverse_origin_* set to the inverse of the bind pose

    Raises:
        SkeletonError: If a joint has a zero bind scale
    """
    finalized = []
    for joint in joints:
        if abs(joint.bind_scale) < DEFAULT_EPS_NORM:
            raise SkeletonError(f"Joint '{joint.name}' has a degenerate bind scale {joint.bind_scale}")
        inv_real, inv_dual = dq_inverse(joint.bind_real, joint.bind_dual)
        finalized.append(replace(
            joint,
            inverse_origin_real=inv_real,
            inverse_origin_dual=inv_dual,
            inverse_origin_scale=1.0 / joint.bind_scale,
        ))
    return finalized
