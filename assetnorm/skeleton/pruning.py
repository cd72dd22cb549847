"""
Removal of unreferenced joints and materials.

A joint survives if any vertex binding references it or any of its
descendants; a material survives if any mesh uses it. Survivors keep their
relative order, so the compacted joint table stays in pre-order and
`remap[old] < remap[child]` still holds for every parent/child pair.

Correlated collections (joints with their keyframe sets, bindings with
joint indices, meshes with material ids) are rebuilt as whole new lists
before being returned, never patched in place.
"""

from dataclasses import replace
from typing import List, Sequence, Tuple
import logging

from ..core.types import CanonicalMesh, Joint, KeyFrameSet, MeshLod

logger = logging.getLogger(__name__)


def build_remap(used: Sequence[bool]) -> List[int]:
    """
    Map old indices to compacted ones.

    Args:
        used: Usage flag per entry

    Returns:
        remap[i] = number of used entries before i, or -1 if i is unused
    """
    remap = []
    count = 0
    for flag in used:
        if flag:
            remap.append(count)
            count += 1
        else:
            remap.append(-1)
    return remap


def used_joints(joints: List[Joint], meshes: List[CanonicalMesh]) -> List[bool]:
    """Flag joints referenced by a binding, directly or through a descendant."""
    used = [False] * len(joints)
    for mesh in meshes:
        for lod in mesh.lods:
            for bindings in lod.joint_bindings or []:
                for joint_id, _ in bindings:
                    used[joint_id] = True

    # Parents precede children, so one reverse sweep reaches every ancestor
    for i in range(len(joints) - 1, -1, -1):
        if used[i] and joints[i].parent >= 0:
            used[joints[i].parent] = True
    return used


def _remap_lod_bindings(lod: MeshLod, remap: List[int]) -> MeshLod:
    if lod.joint_bindings is None:
        return lod
    bindings = [
        [(remap[joint_id], weight) for joint_id, weight in vertex]
        for vertex in lod.joint_bindings
    ]
    return replace(lod, joint_bindings=bindings)


def remove_unused_joints(
    joints: List[Joint],
    keyframe_sets: List[KeyFrameSet],
    meshes: List[CanonicalMesh]
) -> Tuple[List[Joint], List[KeyFrameSet], List[CanonicalMesh], List[int]]:
    """
    Drop joints that no vertex depends on.

    Args:
        joints: Joint table in pre-order
        keyframe_sets: Keyframe set per joint, or an empty list if unanimated
        meshes: Meshes whose bindings reference the joints

    Returns:
        joints: Compacted joint table with remapped parents
        keyframe_sets: Keyframe sets compacted alongside the joints
        meshes: Meshes with remapped joint bindings
        remap: Old-to-new joint index map (-1 for removed joints)
    """
    if keyframe_sets and len(keyframe_sets) != len(joints):
        raise ValueError(
            f"Expected one keyframe set per joint, got {len(keyframe_sets)} for {len(joints)} joints"
        )

    used = used_joints(joints, meshes)
    remap = build_remap(used)

    new_joints = [
        replace(joint, parent=remap[joint.parent] if joint.parent >= 0 else -1)
        for joint, flag in zip(joints, used) if flag
    ]
    new_keyframe_sets = [kf for kf, flag in zip(keyframe_sets, used) if flag]
    new_meshes = [
        replace(mesh, lods=[_remap_lod_bindings(lod, remap) for lod in mesh.lods])
        for mesh in meshes
    ]

    removed = len(joints) - len(new_joints)
    if removed:
        logger.info(f"Removed {removed} unused joints, {len(new_joints)} remain")
    return new_joints, new_keyframe_sets, new_meshes, remap


def remove_unused_materials(
    materials: List,
    meshes: List[CanonicalMesh]
) -> Tuple[List, List[CanonicalMesh], List[int]]:
    """
    Drop materials that no mesh uses.

    Args:
        materials: Material table
        meshes: Meshes referencing materials by index

    Returns:
        materials: Compacted material table
        meshes: Meshes with remapped material ids
        remap: Old-to-new material index map (-1 for removed materials)
    """
    used = [False] * len(materials)
    for mesh in meshes:
        used[mesh.material_id] = True
    remap = build_remap(used)

    new_materials = [material for material, flag in zip(materials, used) if flag]
    new_meshes = [mesh.with_material(remap[mesh.material_id]) for mesh in meshes]

    removed = len(materials) - len(new_materials)
    if removed:
        logger.info(f"Removed {removed} unused materials, {len(new_materials)} remain")
    return new_materials, new_meshes, remap
