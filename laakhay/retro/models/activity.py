"""Collected activity model."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CollectionResult(BaseModel):
    """Raw activity gathered by one collection run, merged per kind.

    Items keep the upstream shape; only duplicates (by natural key) are
    removed.
    """

    items: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    total_tasks: int = Field(default=0, ge=0)
    cached_tasks: int = Field(default=0, ge=0)
    failed_tasks: dict[str, str] = Field(default_factory=dict)
    elapsed_ms: float = Field(default=0.0, ge=0.0)

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    @property
    def is_complete(self) -> bool:
        return not self.failed_tasks

    def count(self, kind: str | None = None) -> int:
        """Items of one kind, or of every kind."""
        if kind is not None:
            return len(self.items.get(kind, []))
        return sum(len(bucket) for bucket in self.items.values())
