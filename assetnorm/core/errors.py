"""
Exception hierarchy for asset conversion.

Every failure is terminal for the asset being converted; callers decide
whether to skip the asset or abort a batch.
"""


class AssetConversionError(Exception):
    """Base exception for asset conversion errors."""
    pass


class SourceNotFoundError(AssetConversionError):
    """A requested input source (e.g. one LOD tier) could not be located."""
    pass


class SkeletonError(AssetConversionError):
    """Bone data references a missing joint or has a degenerate bind pose."""
    pass


class UnsupportedFormatError(AssetConversionError):
    """A packed vertex attribute or format has no encoder."""
    pass


class ConfigError(AssetConversionError):
    """Conversion configuration is missing required fields."""
    pass


class ConversionError(AssetConversionError):
    """Input data is inconsistent across LOD tiers or meshes."""
    pass
