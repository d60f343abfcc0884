"""Project-specific exception types."""


class ConversionError(RuntimeError):
    """Raised when a single top-level item cannot be converted."""


class MissingRequiredIdentityError(ConversionError):
    """Raised when an element lacks the library item, name or layer name needed to name it."""


class UnsupportedGeometryTopologyError(ConversionError):
    """Raised when shape outline data is malformed or unreadable."""


class MissingMaskGeometryError(ConversionError):
    """Raised when a mask layer or mask symbol holds no usable vector shape."""


class NestingDepthExceededError(ConversionError):
    """Raised when symbol nesting goes deeper than the configured maximum."""


class SceneFormatError(ValueError):
    """Raised when a scene document cannot be parsed."""
