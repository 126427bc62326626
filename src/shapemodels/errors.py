"""
Exception types raised by shapemodels.

Both concrete errors also derive from ``ValueError`` so callers that only
guard against bad input keep working.
"""


class ShapeModelError(Exception):
    """Base class for all shapemodels errors."""


class DomainMismatchError(ShapeModelError, ValueError):
    """A field or mesh does not share the reference's point topology."""


class InsufficientDataError(ShapeModelError, ValueError):
    """Not enough data items or sample points to build a model."""
