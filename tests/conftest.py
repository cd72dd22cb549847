"""
Pytest configuration and fixtures for assetnorm tests.
"""

import numpy as np
import pytest
import torch

from assetnorm.core.types import CanonicalMesh, MeshLod
from assetnorm.scene.raw import (
    RawAnimation,
    RawBone,
    RawChannel,
    RawMaterial,
    RawMesh,
    RawNode,
    RawScene,
)
from assetnorm.utils.bounds import AABB


def translation(x, y, z):
    m = np.eye(4)
    m[:3, 3] = [x, y, z]
    return m


@pytest.fixture
def identity_quaternion():
    """Identity quaternion [w, x, y, z]."""
    return torch.tensor([1.0, 0.0, 0.0, 0.0], dtype=torch.float64)


@pytest.fixture
def triangle_mesh():
    """Unskinned triangle with normals and one texcoord channel."""
    return RawMesh(
        name='triangle',
        material_index=0,
        positions=np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]),
        faces=np.array([[0, 1, 2]]),
        normals=np.array([[0.0, 0.0, 1.0]] * 3),
        texcoords=[np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])],
    )


@pytest.fixture
def triangle_scene(triangle_mesh):
    """Scene with one node placing the triangle and a single material."""
    root = RawNode('root', children=[RawNode('triangle_node', mesh_indices=[0])])
    return RawScene(
        root=root,
        meshes=[triangle_mesh],
        materials=[RawMaterial('default', textures={'albedo': 'white.png'})],
    )


@pytest.fixture
def skinned_scene():
    """
    Two meshes skinned to a small hierarchy with one unused joint.

    Hierarchy (pre-order): root, hips, arm, leg, body.
    hips sits at y = 1, arm and leg at y = 2. Both meshes reference the arm
    bone with weights below the import threshold, so arm is unused.
    """
    arm = RawNode('arm', transform=translation(0, 1, 0))
    leg = RawNode('leg', transform=translation(0, 1, 0))
    hips = RawNode('hips', transform=translation(0, 1, 0), children=[arm, leg])
    body = RawNode('body', mesh_indices=[0, 1])
    root = RawNode('root', children=[hips, body])

    def make_mesh(name, material_index):
        return RawMesh(
            name=name,
            material_index=material_index,
            positions=np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 2.0, 0.0]]),
            faces=np.array([[0, 1, 2]]),
            normals=np.array([[0.0, 0.0, 1.0]] * 3),
            bones=[
                RawBone('hips', offset_matrix=translation(0, -1, 0), weights=[(0, 1.0), (1, 0.75)]),
                RawBone('arm', offset_matrix=translation(0, -2, 0), weights=[(0, 0.0), (1, 0.001)]),
                RawBone('leg', offset_matrix=translation(0, -2, 0), weights=[(1, 0.25), (2, 1.0)]),
            ],
        )

    walk = RawAnimation(
        name='walk',
        duration=10.0,
        ticks_per_second=10.0,
        channels=[
            RawChannel(
                'hips',
                position_keys=[(0.0, np.array([0.0, 1.0, 0.0])), (10.0, np.array([0.0, 2.0, 0.0]))],
                rotation_keys=[(0.0, np.array([1.0, 0.0, 0.0, 0.0])), (10.0, np.array([1.0, 0.0, 0.0, 0.0]))],
            ),
        ],
    )

    return RawScene(
        root=root,
        meshes=[make_mesh('torso', 1), make_mesh('legs', 1)],
        materials=[RawMaterial('unused'), RawMaterial('skin')],
        animations=[walk],
    )


@pytest.fixture
def make_mesh():
    """Factory for single-LOD canonical meshes."""

    def _make(
        positions,
        indices=None,
        material_id=0,
        name='mesh',
        **attributes
    ):
        positions = np.asarray(positions, dtype=np.float64)
        if indices is None:
            indices = np.arange(positions.shape[0])
        texcoords = attributes.pop('texcoords', None)
        lod = MeshLod(positions=positions, indices=np.asarray(indices, dtype=np.uint32), **attributes)
        if texcoords is not None:
            lod.texcoords[0] = np.asarray(texcoords, dtype=np.float64)
        return CanonicalMesh(
            name=name,
            material_id=material_id,
            lods=[lod],
            pos_bb=AABB.from_points(positions),
            tc_bb=AABB.from_points(lod.texcoords[0] if texcoords is not None else np.zeros((0, 2))),
        )

    return _make


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
