"""
Stage results: every pipeline stage returns Ok(value) or Err(error).
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

from resource_server.services.errors import ClassifiedError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    error: ClassifiedError

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self):
        raise self.error


Result = Ok[T] | Err
