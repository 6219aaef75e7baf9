"""Concurrency-safe session state."""

import copy
import threading
from collections.abc import Iterator, Mapping, MutableMapping
from typing import Any


class State(MutableMapping[str, Any]):
    """Key-value state of a session, guarded by a re-entrant lock.

    Concurrent writers to different keys never lose updates; writers to the
    same key race with last-write-wins. There is no multi-key atomicity:
    ``update`` applies keys one at a time.

    Key prefixes select the scope a value is persisted in:
    - ``app:`` shared by every user of the app
    - ``user:`` shared by every session of one user
    - ``temp:`` never persisted
    """

    APP_PREFIX = "app:"
    USER_PREFIX = "user:"
    TEMP_PREFIX = "temp:"

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._lock = threading.RLock()
        self._data: dict[str, Any] = dict(initial or {})

    def __getitem__(self, key: str) -> Any:
        with self._lock:
            return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def __delitem__(self, key: str) -> None:
        with self._lock:
            del self._data[key]

    def __iter__(self) -> Iterator[str]:
        # Iterate over a snapshot so concurrent writers cannot break iteration
        with self._lock:
            keys = list(self._data)
        return iter(keys)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def __eq__(self, other: object) -> bool:
        if isinstance(other, State):
            return self.to_dict() == other.to_dict()
        if isinstance(other, Mapping):
            return self.to_dict() == dict(other)
        return NotImplemented

    def __deepcopy__(self, memo: dict[int, Any]) -> "State":
        return State(copy.deepcopy(self.to_dict(), memo))

    def __repr__(self) -> str:
        return f"State({self.to_dict()!r})"

    def to_dict(self) -> dict[str, Any]:
        """Return a shallow snapshot of the current state."""
        with self._lock:
            return dict(self._data)

    def apply_delta(self, delta: Mapping[str, Any]) -> None:
        """Merge a state delta; values replace whole keys, nested values are not merged."""
        for key, value in delta.items():
            self[key] = value


class DeltaState(MutableMapping[str, Any]):
    """View of session state that records every write into a delta.

    Reads see pending writes first, then the session state. Writes go to both,
    so later readers in the same invocation observe them before the delta is
    appended. The delta travels on the event the writer produces.
    """

    def __init__(self, value: MutableMapping[str, Any], delta: dict[str, Any]) -> None:
        self._value = value
        self._delta = delta

    def __getitem__(self, key: str) -> Any:
        if key in self._delta:
            return self._delta[key]
        return self._value[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._value[key] = value
        self._delta[key] = value

    def __delitem__(self, key: str) -> None:
        raise TypeError("State keys cannot be deleted; set the value to None instead")

    def __iter__(self) -> Iterator[str]:
        keys = list(self._value)
        keys.extend(k for k in self._delta if k not in keys)
        return iter(keys)

    def __len__(self) -> int:
        return len(list(iter(self)))

    def __contains__(self, key: object) -> bool:
        return key in self._delta or key in self._value

    def has_delta(self) -> bool:
        return bool(self._delta)

    def to_dict(self) -> dict[str, Any]:
        result = dict(self._value)
        result.update(self._delta)
        return result


__all__ = ["DeltaState", "State"]
