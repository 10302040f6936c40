"""Decision schemas — the shapes a structured decision may take.

Three shapes are supported:

- ``Primitive``: a single ``str``, ``int``, ``float`` or ``bool``.
- ``Choice``: one label out of a fixed set, optionally with a free-text hint
  per label to steer the backend.
- ``RecordList``: an ordered list of typed records (a pydantic model).

Each schema validates raw backend output with a pydantic ``TypeAdapter`` and
either returns the coerced value or raises ``SchemaMismatch``.
"""

import enum
import json
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, create_model

PRIMITIVE_TYPES = (str, int, float, bool)


class SchemaMismatch(Exception):
    """Raw output does not fit a schema. Carries one message per problem."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors


def _errors(e: ValidationError) -> list[str]:
    out = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err["loc"])
        out.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return out


class DecisionSchema(ABC):
    @abstractmethod
    def validate(self, raw: Any) -> Any: ...

    @abstractmethod
    def json_schema(self) -> dict[str, Any]: ...

    def describe(self) -> str:
        """Prompt-ready description of the expected output."""
        return json.dumps(self.json_schema(), indent=2)


class Primitive(DecisionSchema):
    def __init__(self, type_: type = str) -> None:
        if type_ not in PRIMITIVE_TYPES:
            raise TypeError(f"Unsupported primitive type: {type_!r}")
        self.type = type_
        self._adapter = TypeAdapter(type_)

    def validate(self, raw: Any) -> Any:
        try:
            return self._adapter.validate_python(raw)
        except ValidationError as e:
            raise SchemaMismatch(_errors(e)) from e

    def json_schema(self) -> dict[str, Any]:
        return self._adapter.json_schema()

    def __repr__(self) -> str:
        return f"Primitive({self.type.__name__})"


class Choice(DecisionSchema):
    """One label out of a fixed set.

    ``labels`` may be an iterable of strings or a Python ``Enum`` class, in
    which case member names are the labels and ``validate`` returns the member.
    """

    def __init__(
        self,
        labels: Iterable[str] | type[enum.Enum],
        hints: Mapping[str, str] | None = None,
    ) -> None:
        self.enum_cls: type[enum.Enum] | None = None
        if isinstance(labels, type) and issubclass(labels, enum.Enum):
            self.enum_cls = labels
            self.labels = [m.name for m in labels]
        else:
            self.labels = list(labels)
        if not self.labels:
            raise ValueError("Choice needs at least one label")
        self.hints = dict(hints or {})
        unknown = set(self.hints) - set(self.labels)
        if unknown:
            raise ValueError(f"Hints for unknown labels: {sorted(unknown)}")

    def validate(self, raw: Any) -> Any:
        if isinstance(raw, enum.Enum):
            raw = raw.name
        if raw not in self.labels:
            raise SchemaMismatch([f"{raw!r} is not one of {self.labels}"])
        return self.enum_cls[raw] if self.enum_cls else raw

    def json_schema(self) -> dict[str, Any]:
        return {"type": "string", "enum": list(self.labels)}

    def describe(self) -> str:
        lines = ["One of:"]
        for label in self.labels:
            hint = self.hints.get(label)
            lines.append(f"- {label}: {hint}" if hint else f"- {label}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"Choice({self.labels!r})"


class RecordList(DecisionSchema):
    """Ordered list of records, each an instance of ``model``."""

    def __init__(self, model: type[BaseModel]) -> None:
        self.model = model
        self._adapter = TypeAdapter(list[model])  # type: ignore[valid-type]

    def validate(self, raw: Any) -> list[BaseModel]:
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError as e:
                raise SchemaMismatch([f"not valid JSON: {e}"]) from e
        try:
            return self._adapter.validate_python(raw)
        except ValidationError as e:
            raise SchemaMismatch(_errors(e)) from e

    def json_schema(self) -> dict[str, Any]:
        return self._adapter.json_schema()

    def __repr__(self) -> str:
        return f"RecordList({self.model.__name__})"


def record_list(
    name: str,
    fields: Mapping[str, Any],
    hints: Mapping[str, Mapping[str, str]] | None = None,
) -> RecordList:
    """Build a ``RecordList`` from a field spec.

    Field values are types, or tuples/lists of labels which become ``Literal``
    fields. ``hints`` maps a field name to per-label hints, rendered into that
    field's description.

        record_list("Subtask", {"task": str, "agent_type": ("TASK", "CHAT")},
                    hints={"agent_type": {"CHAT": "small talk, jokes"}})
    """
    hints = hints or {}
    definitions: dict[str, Any] = {}
    for field_name, spec in fields.items():
        description = None
        if isinstance(spec, (tuple, list)):
            labels = tuple(spec)
            field_hints = hints.get(field_name, {})
            if field_hints:
                description = "; ".join(
                    f"{label}: {field_hints[label]}" for label in labels if label in field_hints
                )
            spec = Literal[labels]  # type: ignore[valid-type]
        definitions[field_name] = (spec, Field(..., description=description))
    return RecordList(create_model(name, **definitions))
