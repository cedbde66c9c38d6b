from __future__ import annotations

from dataclasses import dataclass

from .errors import MaxCountExceededError


@dataclass
class MaxCountLimiter:
    """Counts processed messages of one type within a batch."""

    type_name: str
    max: int
    count: int = 0

    @property
    def remaining(self) -> int:
        return max(0, self.max - self.count)

    def check(self) -> None:
        if self.count >= self.max:
            raise MaxCountExceededError(f"Max count of {self.max} reached for {self.type_name}")

    def consume(self) -> None:
        self.check()
        self.count += 1


__all__ = ["MaxCountLimiter"]
