"""
Tests for skeleton construction.
"""

import logging

import numpy as np
import pytest
import torch

from assetnorm.core.errors import SkeletonError
from assetnorm.core.types import Joint
from assetnorm.scene.raw import RawBone, RawMesh, RawNode, RawScene
from assetnorm.skeleton.builder import (
    build_skeleton,
    finalize_joints,
    flatten_hierarchy,
    joint_index_by_name,
    model_transforms,
    validate_hierarchy,
)
from assetnorm.utils.dual_quaternion import dq_multiply, dq_translation

from conftest import translation


def bind_translation(joint):
    return dq_translation(joint.bind_real, joint.bind_dual)


class TestFlattenHierarchy:
    """Tests for arena flattening of the node tree."""

    def test_pre_order(self, skinned_scene):
        """Nodes come out in pre-order with parent indices."""
        nodes, parents = flatten_hierarchy(skinned_scene.root)
        assert [n.name for n in nodes] == ['root', 'hips', 'arm', 'leg', 'body']
        assert parents == [-1, 0, 1, 1, 0]

    def test_model_transforms_accumulate(self, skinned_scene):
        """Node-to-model transforms compose parent first."""
        nodes, parents = flatten_hierarchy(skinned_scene.root)
        world = model_transforms(nodes, parents)
        assert np.allclose(world[2][:3, 3], [0.0, 2.0, 0.0])
        assert np.allclose(world[4], np.eye(4))

    def test_deep_chain(self):
        """Long chains flatten without recursion."""
        root = RawNode('n0')
        node = root
        for i in range(1, 3000):
            child = RawNode(f'n{i}')
            node.children.append(child)
            node = child
        nodes, parents = flatten_hierarchy(root)
        assert len(nodes) == 3000
        assert parents[-1] == 2998

    def test_walk_yields_parents(self, skinned_scene):
        """The node walk pairs each node with its parent."""
        pairs = [(node.name, parent.name if parent else None) for node, parent in skinned_scene.root.walk()]
        assert pairs == [('root', None), ('hips', 'root'), ('arm', 'hips'), ('leg', 'hips'), ('body', 'root')]


class TestBuildSkeleton:
    """Tests for joint table construction."""

    def test_joint_order_and_parents(self, skinned_scene):
        """Bone nodes and their ancestors become joints in pre-order."""
        joints = build_skeleton(skinned_scene)
        assert [j.name for j in joints] == ['root', 'hips', 'arm', 'leg']
        assert [j.parent for j in joints] == [-1, 0, 1, 1]

    def test_parent_precedes_child(self, skinned_scene):
        """Every parent index is smaller than its child's."""
        joints = build_skeleton(skinned_scene)
        for i, joint in enumerate(joints):
            assert joint.parent < i
        validate_hierarchy(joints)

    def test_bind_pose_from_offset(self, skinned_scene):
        """Bind pose is the inverse of the bone offset matrix."""
        joints = build_skeleton(skinned_scene)
        assert torch.allclose(bind_translation(joints[1]), torch.tensor([0.0, 1.0, 0.0], dtype=torch.float64))
        assert torch.allclose(bind_translation(joints[3]), torch.tensor([0.0, 2.0, 0.0], dtype=torch.float64))

    def test_ancestor_has_identity_bind(self, skinned_scene, identity_quaternion):
        """Joints added only to connect the hierarchy get an identity bind pose."""
        root = build_skeleton(skinned_scene)[0]
        assert torch.equal(root.bind_real, identity_quaternion)
        assert torch.equal(root.bind_dual, torch.zeros(4, dtype=torch.float64))
        assert root.bind_scale == 1.0

    def test_local_pose_from_node(self, skinned_scene):
        """local_* holds the parent-relative node transform."""
        arm = build_skeleton(skinned_scene)[2]
        local = dq_translation(arm.local_real, arm.local_dual)
        assert torch.allclose(local, torch.tensor([0.0, 1.0, 0.0], dtype=torch.float64))

    def test_bind_pose_includes_mesh_node(self):
        """The mesh node's placement is composed into the bind pose."""
        mesh = RawMesh(
            name='m', material_index=0,
            positions=np.zeros((3, 3)), faces=np.array([[0, 1, 2]]),
            bones=[RawBone('bone', offset_matrix=np.eye(4), weights=[(0, 1.0)])],
        )
        root = RawNode('root', children=[
            RawNode('mesh_node', transform=translation(5, 0, 0), mesh_indices=[0]),
            RawNode('bone'),
        ])
        joints = build_skeleton(RawScene(root=root, meshes=[mesh]))
        assert torch.allclose(bind_translation(joints[1]), torch.tensor([5.0, 0.0, 0.0], dtype=torch.float64))

    def test_static_scene_has_no_joints(self, triangle_scene):
        """Scenes without bones produce an empty joint table."""
        assert build_skeleton(triangle_scene) == []

    def test_bone_without_node_raises(self, skinned_scene):
        """A bone naming a missing node is fatal."""
        skinned_scene.meshes[0].bones.append(RawBone('ghost', weights=[(0, 1.0)]))
        with pytest.raises(SkeletonError, match='ghost'):
            build_skeleton(skinned_scene)

    def test_non_uniform_scale_warns(self, skinned_scene, caplog):
        """Non-uniform bind scale is reported and the x scale kept."""
        for mesh in skinned_scene.meshes:
            mesh.bones[0].offset_matrix = np.diag([0.5, 1.0, 1.0, 1.0])
        with caplog.at_level(logging.WARNING, logger='assetnorm.skeleton.builder'):
            joints = build_skeleton(skinned_scene)
        assert 'non-uniform' in caplog.text
        assert joints[1].bind_scale == pytest.approx(2.0)

    def test_mirrored_bind_pose(self, skinned_scene):
        """A mirrored bone matrix yields a negative real.w."""
        for mesh in skinned_scene.meshes:
            mesh.bones[0].offset_matrix = np.diag([1.0, 1.0, -1.0, 1.0])
        hips = build_skeleton(skinned_scene)[1]
        assert torch.signbit(hips.bind_real[0])


class TestHierarchyHelpers:
    """Tests for validation, lookup and finalization."""

    def test_validate_rejects_forward_parent(self):
        """A parent index not smaller than the child's is rejected."""
        joints = [Joint('a'), Joint('b', parent=2), Joint('c', parent=0)]
        with pytest.raises(SkeletonError):
            validate_hierarchy(joints)

    def test_joint_index_by_name(self, skinned_scene):
        """Name lookup matches table order."""
        joints = build_skeleton(skinned_scene)
        assert joint_index_by_name(joints) == {'root': 0, 'hips': 1, 'arm': 2, 'leg': 3}

    def test_finalize_inverts_bind(self, skinned_scene, identity_quaternion):
        """inverse_origin composed with the bind pose is the identity."""
        joints = finalize_joints(build_skeleton(skinned_scene))
        for joint in joints:
            real, dual = dq_multiply(
                joint.bind_real, joint.bind_dual,
                joint.inverse_origin_real, joint.inverse_origin_dual,
            )
            assert torch.allclose(real, identity_quaternion)
            assert torch.allclose(dual, torch.zeros(4, dtype=torch.float64), atol=1e-12)
            assert joint.inverse_origin_scale == pytest.approx(1.0 / joint.bind_scale)

    def test_finalize_returns_new_joints(self, skinned_scene):
        """Finalization does not modify its input."""
        joints = build_skeleton(skinned_scene)
        before = joints[1].inverse_origin_dual.clone()
        finalize_joints(joints)
        assert torch.equal(joints[1].inverse_origin_dual, before)

    def test_finalize_zero_scale(self):
        """A collapsed bind pose cannot be inverted."""
        with pytest.raises(SkeletonError, match='flat'):
            finalize_joints([Joint('root'), Joint('flat', parent=0, bind_scale=0.0)])
