from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Iterator


class FrozenDict(Mapping[str, Any]):
    """
    Read-only mapping used for every document and metadata value the store hands out.

    - Built once, never changed: no item assignment, no attribute assignment.
    - Values are frozen too (see `freeze`), so a document is immutable all the way down.
    - Compares equal to any mapping with the same items.
    """

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any] | None = None):
        object.__setattr__(self, "_data", dict(data or {}))

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"FrozenDict({self._data!r})"

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __copy__(self) -> "FrozenDict":
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> "FrozenDict":
        return self

    def __reduce__(self):
        return (type(self), (self._data,))

    def thaw(self) -> dict[str, Any]:
        """Return a plain, mutable deep copy."""
        return thaw(self)


def freeze(value: Any) -> Any:
    """
    Convert a JSON-representable value into its immutable form.

    Mappings become FrozenDict, lists/tuples become tuples, scalars are kept.
    Anything that json could not represent raises TypeError.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, FrozenDict):
        return value
    if isinstance(value, Mapping):
        frozen: dict[str, Any] = {}
        for k, v in value.items():
            if not isinstance(k, str):
                raise TypeError(f"document keys must be strings, got {type(k).__name__}: {k!r}")
            frozen[k] = freeze(v)
        return FrozenDict(frozen)
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    raise TypeError(f"value of type {type(value).__name__} is not JSON-representable")


def thaw(value: Any) -> Any:
    """Inverse of `freeze`: mutable dicts and lists, ready for json or editing."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value
