"""
End-to-end conversion of raw scenes into a render-ready model.

MeshConverter drives the stages in order:

1. load one raw scene per LOD tier
2. build the skeleton, material table, canonical meshes and node placements
3. resample and compress animations (skinned models only)
4. prune unused joints and materials
5. apply the global transform, optionally recentering the model
6. quantize and merge vertex and index buffers
7. finalize joints and per-submesh frame bounds

Every intermediate collection is local to one convert() call; the result is
assembled into a RenderModel only once all stages have succeeded.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple
import logging

import numpy as np
from tqdm import tqdm

from ..core.errors import SourceNotFoundError
from ..core.types import AnimationAction, Joint, KeyFrameSet, Material
from ..animation.resampler import build_actions
from ..geometry.mesh_data import build_canonical_meshes
from ..geometry.merger import StreamLayout, SubMesh, merge_buffers
from ..geometry.node_transforms import collect_node_transforms
from ..geometry.quantization import VertexElement
from ..scene.raw import RawScene
from ..skeleton.builder import build_skeleton, finalize_joints, joint_index_by_name, validate_hierarchy
from ..skeleton.pruning import remove_unused_joints, remove_unused_materials
from ..utils.bounds import AABB, union_all
from ..utils.config import ConversionConfig

logger = logging.getLogger(__name__)


# Maps a source identifier to its raw scene, or None if it cannot be found
SceneLoader = Callable[[str], Optional[RawScene]]

# (frame id, model-space bound of a submesh at that frame)
FrameBound = Tuple[int, AABB]


@dataclass
class RenderModel:
    """
    Converted model.

    joints, keyframe_sets and actions are empty for static models;
    keyframe_sets and actions are also empty for skinned models without
    animation.
    """
    materials: List[Material]
    vertex_elements: List[VertexElement]
    vertex_streams: List[np.ndarray]
    index_buffer: np.ndarray
    submeshes: List[SubMesh]
    joints: List[Joint] = field(default_factory=list)
    keyframe_sets: List[KeyFrameSet] = field(default_factory=list)
    actions: List[AnimationAction] = field(default_factory=list)
    frame_rate: int = 0
    num_frames: int = 0
    frame_pos_bounds: List[List[FrameBound]] = field(default_factory=list)

    @property
    def skinned(self) -> bool:
        return len(self.joints) > 0

    @property
    def index_format(self) -> np.dtype:
        return self.index_buffer.dtype

    @property
    def num_lods(self) -> int:
        return len(self.submeshes[0].lods) if self.submeshes else 0


def translation_matrix(offset: np.ndarray) -> np.ndarray:
    m = np.eye(4)
    m[:3, 3] = offset
    return m


class MeshConverter:
    """
    Converts raw scenes into RenderModels.

    Args:
        scene_loader: Default loader used when convert() is not given one
    """

    def __init__(self, scene_loader: Optional[SceneLoader] = None):
        self.scene_loader = scene_loader

    def load_scenes(
        self,
        source_id: str,
        config: ConversionConfig,
        scene_loader: SceneLoader
    ) -> List[RawScene]:
        """
        Load the raw scene of every LOD tier.

        Raises:
            SourceNotFoundError: If a tier's source cannot be loaded
        """
        scenes = []
        for lod in tqdm(range(config.num_lods), desc='Loading LODs', disable=not config.verbose):
            lod_source = config.lod_source(lod, source_id)
            try:
                scene = scene_loader(lod_source)
            except FileNotFoundError as e:
                raise SourceNotFoundError(f"Could not find {lod_source} for LOD {lod}") from e
            if scene is None:
                raise SourceNotFoundError(f"Could not find {lod_source} for LOD {lod}")
            scenes.append(scene)
        return scenes

    def convert(
        self,
        source_id: str,
        config: Optional[ConversionConfig] = None,
        scene_loader: Optional[SceneLoader] = None
    ) -> Optional[RenderModel]:
        """
        Convert one asset.

        Args:
            source_id: Identifier of the LOD-0 source
            config: Conversion settings (defaults when None)
            scene_loader: Loader overriding the converter's default

        Returns:
            RenderModel, or None if a source could not be loaded

        Raises:
            SkeletonError, ConversionError, UnsupportedFormatError: On
                inconsistent or unencodable input
        """
        config = config or ConversionConfig()
        scene_loader = scene_loader or self.scene_loader
        if scene_loader is None:
            raise ValueError("No scene loader given")

        try:
            scenes = self.load_scenes(source_id, config, scene_loader)
        except SourceNotFoundError as e:
            logger.error(str(e))
            return None

        joints = build_skeleton(scenes[0])
        validate_hierarchy(joints)
        skinned = len(joints) > 0

        materials = [
            Material(name=m.name, texture_slots=dict(m.textures), params=dict(m.params))
            for m in scenes[0].materials
        ]
        meshes = build_canonical_meshes(
            scenes,
            joint_index_by_name(joints),
            generate_normals=config.generate_normals,
            generate_tangents=config.generate_tangents,
        )
        nodes = collect_node_transforms(scenes)

        keyframe_sets: List[KeyFrameSet] = []
        actions: List[AnimationAction] = []
        num_frames = 0
        if skinned:
            table = build_actions(
                scenes[0].animations,
                joints,
                fps=config.resample_fps,
                tolerance=config.compression_tolerance,
                verbose=config.verbose,
            )
            if table.actions:
                keyframe_sets, actions, num_frames = table.keyframe_sets, table.actions, table.num_frames
            joints, keyframe_sets, meshes, _ = remove_unused_joints(joints, keyframe_sets, meshes)
        materials, meshes, _ = remove_unused_materials(materials, meshes)

        global_transform = config.transform_matrix
        if config.auto_center:
            placed = [
                meshes[mesh_index].pos_bb.transform(node.lod_transforms[0])
                for node in nodes for mesh_index in node.mesh_indices
            ]
            if placed:
                center = union_all(placed).center
                global_transform = global_transform @ translation_matrix(-center)
                logger.info(f"Auto-centered model on {center.tolist()}")

        layout = StreamLayout.from_meshes(meshes, skinned)
        merged = merge_buffers(meshes, nodes, global_transform, layout)

        frame_pos_bounds: List[List[FrameBound]] = []
        if skinned:
            joints = finalize_joints(joints)
            last_frame = max(num_frames - 1, 0)
            frame_pos_bounds = [
                [(0, submesh.pos_bb), (last_frame, submesh.pos_bb)]
                for submesh in merged.submeshes
            ]

        model = RenderModel(
            materials=materials,
            vertex_elements=merged.elements,
            vertex_streams=merged.vertex_streams,
            index_buffer=merged.index_buffer,
            submeshes=merged.submeshes,
            joints=joints,
            keyframe_sets=keyframe_sets,
            actions=actions,
            frame_rate=config.resample_fps if actions else 0,
            num_frames=num_frames,
            frame_pos_bounds=frame_pos_bounds,
        )
        logger.info(
            f"Converted '{source_id}': {len(model.submeshes)} submeshes, {len(model.joints)} joints, "
            f"{len(model.actions)} actions, {len(model.materials)} materials"
        )
        return model
