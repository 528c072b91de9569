"""Named rate-limit policies and the fixed table they are looked up from."""

from __future__ import annotations

import json
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from pydantic import BaseModel, Field, ValidationError

from .errors import InvalidCategory


@dataclass(frozen=True, slots=True)
class LimitCategory:
    """A request ceiling applied over a fixed time window."""

    name: str
    max_requests: int
    window_ms: int

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("category name must not be empty")
        if self.max_requests <= 0:
            raise ValueError(f"{self.name}: max_requests must be positive")
        if self.window_ms <= 0:
            raise ValueError(f"{self.name}: window_ms must be positive")


class CategoryConfig(BaseModel):
    """Operator-supplied category definition, in the shape of ``RATE_LIMIT_CATEGORIES``."""

    requests: int = Field(..., gt=0)
    window: int = Field(..., gt=0, description="window length in milliseconds")


DEFAULT_CATEGORIES: tuple[LimitCategory, ...] = (
    LimitCategory("api_key_operations", max_requests=10, window_ms=60_000),
    LimitCategory("api_calls", max_requests=100, window_ms=60_000),
    LimitCategory("auth_attempts", max_requests=5, window_ms=300_000),
)


class CategoryTable:
    """Read-only lookup of configured categories that fails closed on unknown names."""

    def __init__(self, categories: Iterable[LimitCategory]) -> None:
        table: dict[str, LimitCategory] = {}
        for category in categories:
            if category.name in table:
                raise ValueError(f"duplicate category {category.name!r}")
            table[category.name] = category
        if not table:
            raise ValueError("at least one rate limit category is required")
        self._table: Mapping[str, LimitCategory] = MappingProxyType(table)

    def get(self, name: str) -> LimitCategory:
        """Return the category called ``name`` or raise :class:`InvalidCategory`."""
        try:
            return self._table[name]
        except KeyError:
            raise InvalidCategory(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._table

    def __iter__(self) -> Iterator[LimitCategory]:
        return iter(self._table.values())

    def __len__(self) -> int:
        return len(self._table)

    @classmethod
    def from_json(cls, raw: str) -> "CategoryTable":
        """Build a table from ``{"name": {"requests": int, "window": int}}``.

        An empty string yields the default table.
        """
        if not raw.strip():
            return cls(DEFAULT_CATEGORIES)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"RATE_LIMIT_CATEGORIES is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError("RATE_LIMIT_CATEGORIES must be a JSON object")

        categories = []
        for name, body in data.items():
            try:
                config = CategoryConfig.model_validate(body)
            except ValidationError as exc:
                raise ValueError(f"invalid rate limit category {name!r}: {exc}") from exc
            categories.append(LimitCategory(name, max_requests=config.requests, window_ms=config.window))
        return cls(categories)
