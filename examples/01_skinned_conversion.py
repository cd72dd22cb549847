"""
Example 01: Converting a Procedural Skinned Character

Demonstrates the complete normalization pipeline on an in-memory asset:
1. Building a raw scene: a tube skinned to a three-joint chain, with a
   swing animation and two LOD tiers
2. Converting it with MeshConverter (skeleton, resampling, compression,
   pruning, quantization, buffer merging)
3. Inspecting the resulting RenderModel
4. Saving the packed buffers

Output files:
- output/01_skinned_tube.npz - Vertex streams, index buffer and keyframes
- output/01_config.json - Conversion settings used
"""

import logging
import math
from pathlib import Path

import numpy as np

from assetnorm import ConversionConfig, MeshConverter, save_config
from assetnorm.scene.raw import (
    RawAnimation,
    RawBone,
    RawChannel,
    RawMaterial,
    RawMesh,
    RawNode,
    RawScene,
)


# =============================================================================
# 1. Configuration
# =============================================================================

PROJECT_ROOT = Path(__file__).parent.parent
OUTPUT_DIR = PROJECT_ROOT / "output"

SEGMENTS = 3          # joints along the tube
SEGMENT_LENGTH = 1.0
RINGS_PER_SEGMENT = 8


def translation(x, y, z):
    m = np.eye(4)
    m[:3, 3] = [x, y, z]
    return m


def z_rotation_quaternion(angle):
    return np.array([math.cos(angle / 2), 0.0, 0.0, math.sin(angle / 2)])


# =============================================================================
# 2. Raw Scene Construction
# =============================================================================

def make_tube(name, sides):
    """Open tube along +y with rings bound to the nearest two joints."""
    rings = SEGMENTS * RINGS_PER_SEGMENT + 1
    height = SEGMENTS * SEGMENT_LENGTH

    positions, normals, texcoords = [], [], []
    for r in range(rings):
        y = height * r / (rings - 1)
        for s in range(sides):
            angle = 2 * math.pi * s / sides
            positions.append([0.2 * math.cos(angle), y, 0.2 * math.sin(angle)])
            normals.append([math.cos(angle), 0.0, math.sin(angle)])
            texcoords.append([s / sides, r / (rings - 1)])

    faces = []
    for r in range(rings - 1):
        for s in range(sides):
            a = r * sides + s
            b = r * sides + (s + 1) % sides
            c = a + sides
            d = b + sides
            faces.extend([[a, c, b], [b, c, d]])

    # Linear falloff between neighbouring joints
    weights = {j: [] for j in range(SEGMENTS)}
    for r in range(rings):
        u = min(r / RINGS_PER_SEGMENT, SEGMENTS - 1 - 1e-9)
        joint = int(u)
        frac = u - joint
        for s in range(sides):
            vertex = r * sides + s
            weights[joint].append((vertex, 1.0 - frac))
            if frac > 0:
                weights[joint + 1].append((vertex, frac))

    bones = [
        RawBone(f'joint{j}', offset_matrix=translation(0, -j * SEGMENT_LENGTH, 0), weights=weights[j])
        for j in range(SEGMENTS)
    ]
    return RawMesh(
        name=name,
        material_index=1,
        positions=np.array(positions),
        faces=np.array(faces),
        normals=np.array(normals),
        texcoords=[np.array(texcoords)],
        bones=bones,
    )


def make_hierarchy():
    """root -> joint0 -> joint1 -> joint2, plus the mesh node."""
    child = None
    for j in reversed(range(SEGMENTS)):
        offset = translation(0, SEGMENT_LENGTH if j > 0 else 0.0, 0)
        child = RawNode(f'joint{j}', transform=offset, children=[child] if child else [])
    return RawNode('root', children=[child, RawNode('tube', mesh_indices=[0])])


def make_swing():
    """Every joint swings about z; one second at 30 ticks per second."""
    channels = []
    for j in range(SEGMENTS):
        keys = [(t, z_rotation_quaternion(0.4 * math.sin(2 * math.pi * t / 30.0))) for t in range(0, 31, 5)]
        position = (0.0, np.array([0.0, SEGMENT_LENGTH if j > 0 else 0.0, 0.0]))
        channels.append(RawChannel(f'joint{j}', position_keys=[position], rotation_keys=keys))
    return RawAnimation('swing', duration=30.0, ticks_per_second=30.0, channels=channels)


def make_scene(sides):
    return RawScene(
        root=make_hierarchy(),
        meshes=[make_tube('tube', sides)],
        materials=[RawMaterial('unused'), RawMaterial('skin', textures={'albedo': 'skin.png'})],
        animations=[make_swing()],
    )


# =============================================================================
# 3. Conversion
# =============================================================================

def main():
    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(name)s: %(message)s')
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

    print("=" * 60)
    print("Converting procedural skinned tube")
    print("=" * 60)

    scenes = {'tube': make_scene(sides=16), 'tube_lod1': make_scene(sides=6)}
    config = ConversionConfig(
        num_lods=2,
        lod_sources=[None, 'tube_lod1'],
        auto_center=True,
        generate_tangents=True,
        verbose=True,
    )
    model = MeshConverter(scene_loader=scenes.get).convert('tube', config)

    print(f"\nStreams:")
    for element, stream in zip(model.vertex_elements, model.vertex_streams):
        print(f"  {element.usage.value:>12}: {element.format.name:<14} {stream.shape}")
    print(f"  Index buffer: {model.index_buffer.size} x {model.index_format}")

    print(f"\nSubmeshes:")
    for submesh in model.submeshes:
        for lod_index, lod in enumerate(submesh.lods):
            print(f"  {submesh.name} LOD {lod_index}: {lod.num_vertices} vertices, "
                  f"{lod.num_indices} indices at base {lod.base_vertex}")

    print(f"\nSkeleton: {[joint.name for joint in model.joints]}")
    print(f"Materials: {[material.name for material in model.materials]}")
    for action in model.actions:
        print(f"Action {action.name}: frames [{action.start_frame}, {action.end_frame}) at {model.frame_rate} fps")
    kept = [len(kf) for kf in model.keyframe_sets]
    print(f"Keyframes per joint after compression: {kept} of {model.num_frames}")

    # =========================================================================
    # 4. Save
    # =========================================================================

    arrays = {
        f"stream_{element.usage.value}": stream
        for element, stream in zip(model.vertex_elements, model.vertex_streams)
    }
    arrays['index_buffer'] = model.index_buffer
    for j, kf in enumerate(model.keyframe_sets):
        arrays[f"keyframes_{j}_frame"] = np.asarray(kf.frame_id)
        arrays[f"keyframes_{j}_real"] = kf.bind_real.numpy()
        arrays[f"keyframes_{j}_dual"] = kf.bind_dual.numpy()
    np.savez(OUTPUT_DIR / "01_skinned_tube.npz", **arrays)
    save_config(config, str(OUTPUT_DIR / "01_config.json"))
    print(f"\nSaved: {OUTPUT_DIR / '01_skinned_tube.npz'}")


if __name__ == "__main__":
    main()
