"""
Time ranges over millisecond epoch timestamps.

A bound of None means unbounded on that side. Each bound is either closed
(inclusive) or open (exclusive).
"""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class TimeRange:
    lower: Optional[int] = None
    upper: Optional[int] = None
    lower_closed: bool = True
    upper_closed: bool = True

    @classmethod
    def all(cls) -> "TimeRange":
        return cls()

    @classmethod
    def closed(cls, lower: int, upper: int) -> "TimeRange":
        return cls(lower, upper, True, True)

    @classmethod
    def open(cls, lower: int, upper: int) -> "TimeRange":
        return cls(lower, upper, False, False)

    @classmethod
    def greater_than(cls, lower: int) -> "TimeRange":
        return cls(lower=lower, lower_closed=False)

    @classmethod
    def at_least(cls, lower: int) -> "TimeRange":
        return cls(lower=lower, lower_closed=True)

    @property
    def has_lower_bound(self) -> bool:
        return self.lower is not None

    @property
    def has_upper_bound(self) -> bool:
        return self.upper is not None

    def contains(self, timestamp: int) -> bool:
        if self.lower is not None:
            if timestamp < self.lower or (timestamp == self.lower and not self.lower_closed):
                return False
        if self.upper is not None:
            if timestamp > self.upper or (timestamp == self.upper and not self.upper_closed):
                return False
        return True

    def __contains__(self, timestamp: int) -> bool:
        return self.contains(timestamp)
