"""Attributes — lock-guarded key/value store for node and walker state."""

import re
import threading
from collections.abc import Iterator, Mapping
from typing import Any

_TEMPLATE_RE = re.compile(r"\{([^{}]+)\}")


class Attributes:
    """Flat key-value store owned by a single node or walker.

    Every read and write takes the instance lock, and ``update()`` writes
    several keys under one acquisition, so a concurrent ``snapshot()`` sees
    either all of an update or none of it.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial) if initial else {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def update(self, values: Mapping[str, Any] | None = None, /, **kwargs: Any) -> None:
        """Write several keys at once."""
        merged = dict(values or {}, **kwargs)
        with self._lock:
            self._data.update(merged)

    def format_template(self, template: str, extra: Mapping[str, Any] | None = None) -> str:
        """Format a string template using attribute values.

        Replaces ``{key}`` placeholders; ``extra`` values take precedence.
        Missing keys are left as-is (e.g. ``{missing}`` stays ``{missing}``).
        """
        data = self.snapshot()
        if extra:
            data.update(extra)

        def _replace(match: re.Match[str]) -> str:
            key = match.group(1)
            if key in data:
                return str(data[key])
            return match.group(0)

        return _TEMPLATE_RE.sub(_replace, template)

    def snapshot(self) -> dict[str, Any]:
        """Return a shallow copy of all attributes."""
        with self._lock:
            return dict(self._data)

    def __getitem__(self, key: str) -> Any:
        with self._lock:
            return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.set(key, value)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __repr__(self) -> str:
        return f"Attributes({self.snapshot()!r})"
