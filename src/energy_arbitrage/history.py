"""Bounded log of past optimization outcomes."""

from collections import deque
from typing import Deque, Iterator, List, Optional

from .models import OptimizationRecord

DEFAULT_CAPACITY = 100


class HistoryStore:
    """Append-only FIFO of optimization records.

    Holds at most ``capacity`` records; each append beyond capacity evicts
    the oldest record.
    """
    
    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"History capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._records: Deque[OptimizationRecord] = deque(maxlen=capacity)
        self._appended = 0
    
    def append(self, record: OptimizationRecord) -> None:
        self._records.append(record)
        self._appended += 1
    
    def window(self, n: int) -> List[OptimizationRecord]:
        """Most recent ``n`` records (or fewer), oldest first."""
        if n <= 0:
            return []
        return list(self._records)[-n:]
    
    def latest(self) -> Optional[OptimizationRecord]:
        return self._records[-1] if self._records else None
    
    @property
    def total_appended(self) -> int:
        """Number of records ever appended, including evicted ones."""
        return self._appended
    
    def __len__(self) -> int:
        return len(self._records)
    
    def __iter__(self) -> Iterator[OptimizationRecord]:
        return iter(list(self._records))
