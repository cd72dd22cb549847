"""
Buffer merging across meshes and LOD tiers.

All mesh LODs placed by all nodes are concatenated into one vertex buffer
per vertex element and a single index buffer. Each (node, mesh) pair
becomes a SubMesh whose LODs record where their vertices and indices live
in the shared buffers; indices stay local to their LOD and are offset by
base_vertex at draw time.

Vertex order is node order, then mesh order within the node, then LOD.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence
import logging

import numpy as np

from ..core.errors import UnsupportedFormatError
from ..core.types import CanonicalMesh, MeshLod, NodeTransform
from ..utils.bounds import AABB
from .quantization import (
    SUPPORTED_FORMATS,
    VertexElement,
    VertexUsage,
    index_format_for,
    pack_colors,
    pack_normals,
    pack_skin_bindings,
    pack_tangent_frames,
    quantize_positions,
    quantize_texcoords,
)

logger = logging.getLogger(__name__)


@dataclass
class StreamLayout:
    """Ordered vertex elements shared by every submesh."""
    elements: List[VertexElement] = field(default_factory=list)

    @classmethod
    def from_meshes(cls, meshes: Sequence[CanonicalMesh], skinned: bool) -> 'StreamLayout':
        """
        Choose the vertex streams of a model.

        Position always comes first. A tangent-frame quaternion replaces the
        normal stream when any mesh has a tangent frame; otherwise a normal
        stream is present if any mesh has normals. Colors and texture
        coordinates follow if any mesh has them, then blend weights and
        indices for skinned models.
        """
        usages = [VertexUsage.POSITION]
        if any(mesh.has_tangent_frame for mesh in meshes):
            usages.append(VertexUsage.TANGENT)
        elif any(mesh.has_normal for mesh in meshes):
            usages.append(VertexUsage.NORMAL)
        if any(mesh.has_diffuse for mesh in meshes):
            usages.append(VertexUsage.DIFFUSE)
        if any(mesh.has_specular for mesh in meshes):
            usages.append(VertexUsage.SPECULAR)
        if any(mesh.has_texcoord for mesh in meshes):
            usages.append(VertexUsage.TEXCOORD)
        if skinned:
            usages.extend([VertexUsage.BLEND_WEIGHT, VertexUsage.BLEND_INDEX])

        return cls([VertexElement(usage, SUPPORTED_FORMATS[usage]) for usage in usages])

    @property
    def usages(self) -> List[VertexUsage]:
        return [element.usage for element in self.elements]

    def __contains__(self, usage: VertexUsage) -> bool:
        return usage in self.usages

    def __len__(self) -> int:
        return len(self.elements)


@dataclass
class SubMeshLod:
    """Location of one LOD of a submesh inside the merged buffers."""
    material_id: int
    num_vertices: int
    num_indices: int
    base_vertex: int
    start_index: int


@dataclass
class SubMesh:
    """One placed mesh: model-space bounds plus its LOD ranges."""
    name: str
    material_id: int
    pos_bb: AABB
    tc_bb: AABB
    lods: List[SubMeshLod] = field(default_factory=list)


@dataclass
class MergedBuffers:
    """Shared vertex streams, index buffer and submesh table."""
    elements: List[VertexElement]
    vertex_streams: List[np.ndarray]          # one (N, components) array per element
    index_buffer: np.ndarray                  # (I,) uint16 or uint32
    submeshes: List[SubMesh]

    @property
    def index_format(self) -> np.dtype:
        return self.index_buffer.dtype

    @property
    def num_vertices(self) -> int:
        return int(self.vertex_streams[0].shape[0]) if self.vertex_streams else 0

    def stream_bytes(self, index: int) -> bytes:
        """Little-endian bytes of one vertex stream."""
        return self.vertex_streams[index].tobytes()

    def index_bytes(self) -> bytes:
        return self.index_buffer.tobytes()


# =============================================================================
# Attribute transforms
# =============================================================================

def transform_points(points: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Apply a 4x4 transform to (N, 3) points with perspective divide."""
    homo = np.concatenate([points, np.ones((points.shape[0], 1))], axis=1) @ matrix.T
    return homo[:, :3] / homo[:, 3:4]


def transform_directions(vectors: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Apply the 3x3 part of a transform to (N, 3) vectors and normalize."""
    out = vectors @ matrix[:3, :3].T
    return out / np.maximum(np.linalg.norm(out, axis=-1, keepdims=True), 1e-12)


def _perpendicular(normals: np.ndarray) -> np.ndarray:
    """Some unit vector perpendicular to each normal."""
    helper = np.where(np.abs(normals[:, :1]) < 0.9, [[1.0, 0.0, 0.0]], [[0.0, 1.0, 0.0]])
    t = np.cross(helper, normals)
    return t / np.maximum(np.linalg.norm(t, axis=-1, keepdims=True), 1e-12)


def _tangent_frame(lod: MeshLod, matrix: np.ndarray, matrix_it: np.ndarray) -> np.ndarray:
    """Packed tangent quaternions, completing whatever part of the frame is missing."""
    count = lod.num_vertices
    if lod.normals is not None:
        normals = transform_directions(lod.normals, matrix_it)
    else:
        normals = np.tile([0.0, 0.0, 1.0], (count, 1))

    tangents = transform_directions(lod.tangents, matrix) if lod.tangents is not None else None
    binormals = transform_directions(lod.binormals, matrix) if lod.binormals is not None else None
    if tangents is None and binormals is None:
        tangents = _perpendicular(normals)
        binormals = np.cross(normals, tangents)
    elif tangents is None:
        tangents = np.cross(binormals, normals)
    elif binormals is None:
        binormals = np.cross(normals, tangents)

    return pack_tangent_frames(tangents, binormals, normals)


def _encode_lod(
    usage: VertexUsage,
    lod: MeshLod,
    matrix: np.ndarray,
    matrix_it: np.ndarray,
    pos_bb: AABB,
    tc_bb: AABB
) -> np.ndarray:
    count = lod.num_vertices
    if usage is VertexUsage.POSITION:
        return quantize_positions(transform_points(lod.positions, matrix), pos_bb)
    if usage is VertexUsage.NORMAL:
        if lod.normals is None:
            return pack_normals(np.tile([0.0, 0.0, 1.0], (count, 1)))
        return pack_normals(transform_directions(lod.normals, matrix_it))
    if usage is VertexUsage.TANGENT:
        return _tangent_frame(lod, matrix, matrix_it)
    if usage is VertexUsage.DIFFUSE:
        return pack_colors(lod.diffuse if lod.diffuse is not None else np.ones((count, 4)))
    if usage is VertexUsage.SPECULAR:
        return pack_colors(lod.specular if lod.specular is not None else np.zeros((count, 4)))
    if usage is VertexUsage.TEXCOORD:
        texcoords = lod.texcoords[0] if lod.texcoords[0] is not None else np.zeros((count, 2))
        return quantize_texcoords(texcoords, tc_bb)
    raise UnsupportedFormatError(f"No encoder for {usage.value}")


# =============================================================================
# Merging
# =============================================================================

def merge_buffers(
    meshes: Sequence[CanonicalMesh],
    nodes: Sequence[NodeTransform],
    global_transform: np.ndarray,
    layout: StreamLayout
) -> MergedBuffers:
    """
    Pack and concatenate every placed mesh LOD.

    Positions are quantized against the mesh's LOD-0 bound moved into model
    space by the node's LOD-0 placement, so all LODs of a submesh share one
    quantization domain. Attributes a mesh lacks are filled with neutral
    values (up normal, white diffuse, black specular, zero texcoords and
    blend weights).

    Args:
        meshes: Canonical meshes
        nodes: Placement of mesh-bearing nodes
        global_transform: (4, 4) model transform applied after node placement
        layout: Vertex streams to produce

    Returns:
        MergedBuffers with one array per layout element
    """
    global_transform = np.asarray(global_transform, dtype=np.float64)
    chunks: Dict[VertexUsage, List[np.ndarray]] = {usage: [] for usage in layout.usages}
    index_chunks: List[np.ndarray] = []
    submeshes: List[SubMesh] = []
    base_vertex = 0
    start_index = 0

    for node in nodes:
        placement0 = global_transform @ node.lod_transforms[0]
        for mesh_index in node.mesh_indices:
            mesh = meshes[mesh_index]
            pos_bb = mesh.pos_bb.transform(placement0)
            submesh = SubMesh(name=node.name, material_id=mesh.material_id, pos_bb=pos_bb, tc_bb=mesh.tc_bb)

            for lod_index, lod in enumerate(mesh.lods):
                placement = global_transform @ node.lod_transforms[lod_index]
                placement_it = np.linalg.inv(placement).T

                for usage in layout.usages:
                    if usage is VertexUsage.BLEND_INDEX:
                        continue
                    if usage is VertexUsage.BLEND_WEIGHT:
                        bindings = lod.joint_bindings or [[] for _ in range(lod.num_vertices)]
                        weights, joint_ids = pack_skin_bindings(bindings)
                        chunks[VertexUsage.BLEND_WEIGHT].append(weights)
                        chunks[VertexUsage.BLEND_INDEX].append(joint_ids)
                        continue
                    chunks[usage].append(_encode_lod(usage, lod, placement, placement_it, pos_bb, mesh.tc_bb))

                index_chunks.append(np.asarray(lod.indices, dtype=np.int64))
                submesh.lods.append(SubMeshLod(
                    material_id=mesh.material_id,
                    num_vertices=lod.num_vertices,
                    num_indices=lod.num_indices,
                    base_vertex=base_vertex,
                    start_index=start_index,
                ))
                base_vertex += lod.num_vertices
                start_index += lod.num_indices

            submeshes.append(submesh)

    streams = []
    for element in layout.elements:
        parts = chunks[element.usage]
        if parts:
            streams.append(np.concatenate(parts).astype(element.format.dtype))
        else:
            streams.append(np.zeros((0, element.format.components), dtype=element.format.dtype))

    indices = np.concatenate(index_chunks) if index_chunks else np.zeros(0, dtype=np.int64)
    max_index = int(indices.max()) if indices.size else 0
    index_buffer = indices.astype(index_format_for(max_index))

    logger.info(
        f"Merged {len(submeshes)} submeshes: {base_vertex} vertices, {start_index} indices "
        f"({index_buffer.dtype.itemsize * 8}-bit), streams {[u.value for u in layout.usages]}"
    )
    return MergedBuffers(
        elements=list(layout.elements),
        vertex_streams=streams,
        index_buffer=index_buffer,
        submeshes=submeshes,
    )
