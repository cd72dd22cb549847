"""
Conversion pipeline from raw scenes to render models.
"""

from .converter import MeshConverter, RenderModel, SceneLoader

__all__ = [
    "MeshConverter",
    "RenderModel",
    "SceneLoader",
]
