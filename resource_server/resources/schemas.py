"""
Schema capability used for parameter and payload validation.

A schema turns raw input into a validated plain value, or reports the
field-level issues that stopped it. PydanticSchema adapts any pydantic
model or type to this interface.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, Protocol, TypeVar

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)


@dataclass(frozen=True)
class ValidationIssue:
    """One field-level validation problem."""

    path: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "message": self.message}


@dataclass(frozen=True)
class SchemaResult(Generic[T]):
    """Outcome of Schema.validate(): a value or a list of issues."""

    value: T | None = None
    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues

    @classmethod
    def success(cls, value: T) -> "SchemaResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, issues: list[ValidationIssue]) -> "SchemaResult[T]":
        if not issues:
            raise ValueError("a failed validation needs at least one issue")
        return cls(issues=list(issues))


class Schema(Protocol[T_co]):
    def validate(self, raw: Any) -> SchemaResult[T_co]: ...


class PydanticSchema(Generic[T]):
    """
    Schema backed by a pydantic model or type.

    The validated value is dumped back to plain JSON-compatible data
    (only fields that were set), so cached values and rendered text do not
    depend on model classes. With by_alias the dump uses serialization
    aliases, which lets a parameter model rename fields for the upstream API.

    Usage:
        schema = PydanticSchema(Machine)
        result = schema.validate({"system_id": "abc123", "hostname": "node1"})
        if result.ok:
            machine = result.value
    """

    def __init__(self, tp: type[T] | Any, by_alias: bool = False):
        self._adapter: TypeAdapter[Any] = TypeAdapter(tp)
        self._by_alias = by_alias

    def validate(self, raw: Any) -> SchemaResult[Any]:
        try:
            parsed = self._adapter.validate_python(raw)
        except PydanticValidationError as e:
            return SchemaResult.failure(
                [
                    ValidationIssue(
                        path=".".join(str(part) for part in err["loc"]),
                        message=err["msg"],
                    )
                    for err in e.errors()
                ]
            )
        return SchemaResult.success(
            self._adapter.dump_python(
                parsed, mode="json", exclude_unset=True, by_alias=self._by_alias
            )
        )
