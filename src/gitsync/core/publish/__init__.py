"""Publication point: the atomically swapped link readers follow."""

from .link import PublicationPoint

__all__ = ["PublicationPoint"]
