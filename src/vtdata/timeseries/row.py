"""
Row and RowDescriptor: the fixed-width record shared by every store.

Each column has an index into Row.values and a bit in Row.bit_vector. A set
bit means the value was supplied for this row; an unset bit means the value
is either 0.0 (fresh row) or carried forward from the previous row by the
store that holds it.
"""
import math
from typing import Dict, Iterable, List, Optional


class RowDescriptor:
    """Ordered, unique column names with their index and bit."""

    def __init__(self, column_names: Iterable[str]):
        self.column_names: List[str] = list(column_names)
        if len(set(self.column_names)) != len(self.column_names):
            raise ValueError("Column names must be unique")
        self.n_columns = len(self.column_names)
        self._index: Dict[str, int] = {name: i for i, name in enumerate(self.column_names)}

    def index_of(self, column: str) -> int:
        return self._index[column]

    def bit_for(self, column: str) -> int:
        return 1 << self._index[column]

    def __contains__(self, column: str) -> bool:
        return column in self._index

    def __repr__(self) -> str:
        return f"RowDescriptor({self.column_names!r})"


class Row:
    __slots__ = ("timestamp", "bit_vector", "values")

    def __init__(self, timestamp: int, bit_vector: int = 0,
                 values: Optional[List[float]] = None, n_columns: int = 0):
        self.timestamp = timestamp
        self.bit_vector = bit_vector
        self.values = list(values) if values is not None else [0.0] * n_columns

    @classmethod
    def for_schema(cls, schema: RowDescriptor, timestamp: int = 0) -> "Row":
        return cls(timestamp, 0, n_columns=schema.n_columns)

    def copy(self) -> "Row":
        return Row(self.timestamp, self.bit_vector, self.values)

    def includes(self, bit: int) -> bool:
        return (self.bit_vector & bit) != 0

    def has(self, schema: RowDescriptor, column: str) -> bool:
        return self.includes(schema.bit_for(column))

    def get(self, schema: RowDescriptor, column: str) -> float:
        return self.values[schema.index_of(column)]

    def set(self, schema: RowDescriptor, column: str, value: Optional[float]) -> None:
        """Set a column. None, NaN and infinite values are ignored."""
        if value is None or math.isnan(value) or math.isinf(value):
            return
        self.values[schema.index_of(column)] = float(value)
        self.bit_vector |= schema.bit_for(column)

    def clear(self, bit: int) -> None:
        self.bit_vector &= ~bit

    def merge_with(self, other: "Row") -> None:
        """Copy every column set in `other` into this row. Timestamp is kept."""
        for i, value in enumerate(other.values):
            bit = 1 << i
            if other.includes(bit):
                self.values[i] = value
                self.bit_vector |= bit

    def __eq__(self, other) -> bool:
        if not isinstance(other, Row):
            return NotImplemented
        return (self.timestamp == other.timestamp
                and self.bit_vector == other.bit_vector
                and self.values == other.values)

    def __repr__(self) -> str:
        return f"Row(ts={self.timestamp}, bv={self.bit_vector:#x}, values={self.values})"
