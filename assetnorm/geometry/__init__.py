"""
Mesh geometry: canonical meshes, node placement, vertex packing and merging.
"""

from .mesh_data import (
    build_canonical_meshes,
    build_mesh_lod,
    build_joint_bindings,
    compute_normals,
    compute_tangents,
)
from .node_transforms import collect_node_transforms
from .quantization import (
    VertexUsage,
    VertexFormat,
    VertexElement,
    quantize_positions,
    dequantize_positions,
    quantize_texcoords,
    dequantize_texcoords,
    pack_normals,
    unpack_normals,
    tangent_frame_to_quaternion,
    pack_tangent_quaternions,
    pack_colors,
    pack_skin_bindings,
    index_format_for,
)
from .merger import (
    StreamLayout,
    SubMeshLod,
    SubMesh,
    MergedBuffers,
    merge_buffers,
)

__all__ = [
    # Mesh data
    "build_canonical_meshes",
    "build_mesh_lod",
    "build_joint_bindings",
    "compute_normals",
    "compute_tangents",
    # Node placement
    "collect_node_transforms",
    # Quantization
    "VertexUsage",
    "VertexFormat",
    "VertexElement",
    "quantize_positions",
    "dequantize_positions",
    "quantize_texcoords",
    "dequantize_texcoords",
    "pack_normals",
    "unpack_normals",
    "tangent_frame_to_quaternion",
    "pack_tangent_quaternions",
    "pack_colors",
    "pack_skin_bindings",
    "index_format_for",
    # Merging
    "StreamLayout",
    "SubMeshLod",
    "SubMesh",
    "MergedBuffers",
    "merge_buffers",
]
