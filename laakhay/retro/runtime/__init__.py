"""Runtime orchestration components.

ActivityCollector lives in ``runtime.collector`` and is imported from there,
since it depends on the source adapters which in turn use the chunking types.
"""

from .chunking import BoundedExecutor, ChunkScheduler, ResultAggregator, TaskPlanner

__all__ = [
    "BoundedExecutor",
    "ChunkScheduler",
    "ResultAggregator",
    "TaskPlanner",
]
