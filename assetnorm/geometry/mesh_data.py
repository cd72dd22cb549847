"""
Canonical mesh construction from raw importer meshes.

Each raw mesh becomes one MeshLod per LOD tier: indices flattened from
triangles, attribute arrays copied as float64, missing normals (and, on
request, tangent frames) generated, and bone weights turned into per-vertex
joint bindings sorted by descending weight.

Meshes correspond across LOD tiers by position in the scene's mesh list.
"""

from typing import Dict, List, Optional, Sequence, Tuple
import logging

import numpy as np

from ..core.constants import DEFAULT_EPS_NORM, MAX_TEXCOORD_CHANNELS, MIN_BINDING_WEIGHT
from ..core.errors import ConversionError, SkeletonError
from ..core.types import CanonicalMesh, JointBinding, MeshLod
from ..scene.raw import RawMesh, RawScene
from ..utils.bounds import AABB

logger = logging.getLogger(__name__)


def _normalize_rows(v: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(v, axis=-1, keepdims=True)
    return v / np.maximum(norm, DEFAULT_EPS_NORM)


def _as_float(array: Optional[np.ndarray], width: int) -> Optional[np.ndarray]:
    if array is None:
        return None
    return np.asarray(array, dtype=np.float64)[:, :width].copy()


def compute_normals(positions: np.ndarray, indices: np.ndarray) -> np.ndarray:
    """
    Smooth per-vertex normals from area-weighted face normals.

    Args:
        positions: Vertex positions (V, 3)
        indices: Triangle list indices (I,)

    Returns:
        Unit normals (V, 3); vertices not referenced by any triangle get zeros
    """
    tris = np.asarray(indices, dtype=np.int64).reshape(-1, 3)
    p0, p1, p2 = positions[tris[:, 0]], positions[tris[:, 1]], positions[tris[:, 2]]
    face_normals = np.cross(p1 - p0, p2 - p0)

    normals = np.zeros_like(positions, dtype=np.float64)
    for corner in range(3):
        np.add.at(normals, tris[:, corner], face_normals)
    return _normalize_rows(normals)


def compute_tangents(
    positions: np.ndarray,
    indices: np.ndarray,
    texcoords: np.ndarray,
    normals: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Per-vertex tangent frames from texture-space derivatives.

    Tangents are Gram-Schmidt orthogonalized against the normal; binormals are
    cross(n, t) oriented to agree with the accumulated texture v direction.

    Args:
        positions: (V, 3)
        indices: Triangle list indices (I,)
        texcoords: (V, 2)
        normals: Unit normals (V, 3)

    Returns:
        tangents, binormals: (V, 3) each
    """
    tris = np.asarray(indices, dtype=np.int64).reshape(-1, 3)
    p0, p1, p2 = positions[tris[:, 0]], positions[tris[:, 1]], positions[tris[:, 2]]
    uv0, uv1, uv2 = texcoords[tris[:, 0]], texcoords[tris[:, 1]], texcoords[tris[:, 2]]

    e1, e2 = p1 - p0, p2 - p0
    duv1, duv2 = uv1 - uv0, uv2 - uv0
    det = duv1[:, 0] * duv2[:, 1] - duv2[:, 0] * duv1[:, 1]
    r = np.where(np.abs(det) > DEFAULT_EPS_NORM, 1.0 / np.where(det == 0, 1.0, det), 0.0)[:, None]

    sdir = (e1 * duv2[:, 1:2] - e2 * duv1[:, 1:2]) * r
    tdir = (e2 * duv1[:, 0:1] - e1 * duv2[:, 0:1]) * r

    tan_accum = np.zeros_like(positions, dtype=np.float64)
    bin_accum = np.zeros_like(positions, dtype=np.float64)
    for corner in range(3):
        np.add.at(tan_accum, tris[:, corner], sdir)
        np.add.at(bin_accum, tris[:, corner], tdir)

    tangents = _normalize_rows(tan_accum - normals * np.sum(normals * tan_accum, axis=-1, keepdims=True))
    binormals = np.cross(normals, tangents)
    handedness = np.where(np.sum(binormals * bin_accum, axis=-1, keepdims=True) < 0, -1.0, 1.0)
    return tangents, binormals * handedness


def build_joint_bindings(
    raw: RawMesh,
    joint_ids: Dict[str, int]
) -> Optional[List[List[JointBinding]]]:
    """
    Per-vertex (joint, weight) lists of a raw mesh.

    Weights below MIN_BINDING_WEIGHT are dropped and each vertex's list is
    sorted by descending weight.

    Returns:
        Binding lists, or None if the mesh has no bones

    Raises:
        SkeletonError: If a bone has no joint
    """
    if not raw.bones:
        return None

    bindings: List[List[JointBinding]] = [[] for _ in range(len(raw.positions))]
    for bone in raw.bones:
        joint_id = joint_ids.get(bone.name)
        if joint_id is None:
            raise SkeletonError(f"Bone '{bone.name}' of mesh '{raw.name}' has no joint")
        for vertex_id, weight in bone.weights:
            if weight >= MIN_BINDING_WEIGHT:
                bindings[vertex_id].append((joint_id, float(weight)))

    for vertex in bindings:
        vertex.sort(key=lambda binding: binding[1], reverse=True)
    return bindings


def build_mesh_lod(
    raw: RawMesh,
    joint_ids: Dict[str, int],
    generate_normals: bool = True,
    generate_tangents: bool = False
) -> MeshLod:
    """
    Convert one raw mesh into a MeshLod.

    Args:
        raw: Triangulated raw mesh
        joint_ids: Joint index by name
        generate_normals: Compute normals if the mesh has none
        generate_tangents: Compute a tangent frame if the mesh is textured
            and lacks tangents or binormals

    Returns:
        MeshLod with float64 attributes and uint32 indices
    """
    faces = np.asarray(raw.faces)
    if faces.ndim != 2 or faces.shape[1] != 3:
        raise ConversionError(f"Mesh '{raw.name}' is not triangulated")

    positions = np.asarray(raw.positions, dtype=np.float64)[:, :3].copy()
    indices = faces.reshape(-1).astype(np.uint32)

    texcoords: List[Optional[np.ndarray]] = [None] * MAX_TEXCOORD_CHANNELS
    for channel, tc in enumerate(raw.texcoords[:MAX_TEXCOORD_CHANNELS]):
        texcoords[channel] = _as_float(tc, 2)

    normals = _as_float(raw.normals, 3)
    if normals is None and generate_normals:
        normals = compute_normals(positions, indices)

    tangents = _as_float(raw.tangents, 3)
    binormals = _as_float(raw.binormals, 3)
    first_texcoord = next((tc for tc in texcoords if tc is not None), None)
    if (generate_tangents and normals is not None and first_texcoord is not None
            and (tangents is None or binormals is None)):
        tangents, binormals = compute_tangents(positions, indices, first_texcoord, normals)

    colors = list(raw.colors) + [None, None]
    return MeshLod(
        positions=positions,
        indices=indices,
        normals=normals,
        tangents=tangents,
        binormals=binormals,
        texcoords=texcoords,
        diffuse=_as_float(colors[0], 4),
        specular=_as_float(colors[1], 4),
        joint_bindings=build_joint_bindings(raw, joint_ids),
    )


def build_canonical_meshes(
    scenes: Sequence[RawScene],
    joint_ids: Dict[str, int],
    generate_normals: bool = True,
    generate_tangents: bool = False
) -> List[CanonicalMesh]:
    """
    Build every mesh with all of its LOD tiers.

    Names and material ids come from LOD 0. If any mesh is textured, meshes
    without texture coordinates get a zero-filled channel 0. Bounding boxes
    are computed from LOD 0.

    Args:
        scenes: One raw scene per LOD tier
        joint_ids: Joint index by name
        generate_normals: Compute missing normals
        generate_tangents: Compute missing tangent frames of textured meshes

    Returns:
        Canonical meshes in LOD-0 scene order

    Raises:
        ConversionError: If LOD tiers disagree on the number of meshes
    """
    base = scenes[0]
    for lod, scene in enumerate(scenes[1:], start=1):
        if len(scene.meshes) != len(base.meshes):
            raise ConversionError(
                f"LOD {lod} has {len(scene.meshes)} meshes, LOD 0 has {len(base.meshes)}"
            )

    per_mesh_lods: List[List[MeshLod]] = [[] for _ in base.meshes]
    for scene in scenes:
        for mi, raw in enumerate(scene.meshes):
            per_mesh_lods[mi].append(build_mesh_lod(raw, joint_ids, generate_normals, generate_tangents))

    any_texcoord = any(lod.texcoords[0] is not None for lods in per_mesh_lods for lod in lods)
    if any_texcoord:
        for lods in per_mesh_lods:
            for lod in lods:
                if lod.texcoords[0] is None:
                    lod.texcoords[0] = np.zeros((lod.num_vertices, 2))

    meshes = []
    for raw, lods in zip(base.meshes, per_mesh_lods):
        lod0 = lods[0]
        tc0 = lod0.texcoords[0]
        meshes.append(CanonicalMesh(
            name=raw.name,
            material_id=raw.material_index,
            lods=lods,
            pos_bb=AABB.from_points(lod0.positions),
            tc_bb=AABB.from_points(tc0 if tc0 is not None else np.zeros((0, 2))),
        ))

    logger.info(f"Built {len(meshes)} meshes over {len(scenes)} LODs")
    return meshes
