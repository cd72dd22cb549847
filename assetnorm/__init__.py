"""
assetnorm: offline normalization of 3D assets into render-ready models.

Raw scene data (node hierarchy, meshes per LOD, bone bind matrices,
animation channels, materials) is converted into one model with:

- a skeleton with dual-quaternion bind poses in pre-order
- animation resampled to a fixed frame rate with redundant keys removed
- quantized vertex streams and a shared index buffer for all meshes and LODs

Conventions:
- Quaternions are [w, x, y, z] torch tensors of shape (..., 4)
- 4x4 matrices act on column vectors
- Mesh attributes and packed buffers are numpy arrays

Example:
    >>> from assetnorm import MeshConverter, ConversionConfig
    >>> converter = MeshConverter(scene_loader=my_importer)
    >>> model = converter.convert('hero.fbx', ConversionConfig(auto_center=True))
    >>> model.skinned, len(model.submeshes)
"""

__version__ = "0.1.0"
__author__ = "assetnorm Contributors"

from . import core
from . import utils
from . import scene
from . import skeleton
from . import animation
from . import geometry
from . import pipeline

from .pipeline import MeshConverter, RenderModel
from .utils.config import ConversionConfig, load_config, save_config

__all__ = [
    "core",
    "utils",
    "scene",
    "skeleton",
    "animation",
    "geometry",
    "pipeline",
    "MeshConverter",
    "RenderModel",
    "ConversionConfig",
    "load_config",
    "save_config",
]
