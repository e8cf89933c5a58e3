"""Composable SQL predicates with bound parameters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple


def escape_like(value: str) -> str:
    """Escape ``LIKE`` wildcards so ``value`` is matched literally."""

    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass
class FilterBuilder:
    """Collect ``(predicate, parameters)`` pairs and render a WHERE clause.

    Predicates are fixed SQL fragments written by the caller; user input only
    ever travels through the parameter list.
    """

    _clauses: List[Tuple[str, Tuple[object, ...]]] = field(default_factory=list)

    def add(self, predicate: str, *parameters: object) -> "FilterBuilder":
        if predicate.count("?") != len(parameters):
            raise ValueError("Number of placeholders does not match number of parameters")
        self._clauses.append((predicate, parameters))
        return self

    def contains_any(self, columns: List[str], text: str) -> "FilterBuilder":
        """Case-insensitive substring match of ``text`` against any column."""

        pattern = f"%{escape_like(text.lower())}%"
        predicate = " OR ".join(f"LOWER({column}) LIKE ? ESCAPE '\\'" for column in columns)
        return self.add(f"({predicate})", *([pattern] * len(columns)))

    def __bool__(self) -> bool:
        return bool(self._clauses)

    @property
    def where(self) -> str:
        if not self._clauses:
            return ""
        return "WHERE " + " AND ".join(predicate for predicate, _ in self._clauses)

    @property
    def parameters(self) -> List[object]:
        values: List[object] = []
        for _, params in self._clauses:
            values.extend(params)
        return values


__all__ = ["FilterBuilder", "escape_like"]
