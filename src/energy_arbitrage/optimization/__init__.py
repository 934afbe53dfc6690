"""
Allocation policies for splitting site power between revenue streams.
"""

from .base import (
    AllocationDecision,
    AllocationStrategy
)

from .allocation import AllocationOptimizer

__all__ = [
    "AllocationDecision",
    "AllocationStrategy",
    "AllocationOptimizer",
]
