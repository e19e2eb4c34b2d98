"""Model engine: metadata-driven entity instances."""

from metaforge.models.context import ModelContext
from metaforge.models.model import Model

__all__ = ["Model", "ModelContext"]
