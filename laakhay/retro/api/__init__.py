"""High-level API facades."""

from .pipeline import RetroPipeline

__all__ = ["RetroPipeline"]
