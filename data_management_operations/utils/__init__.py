"""
Utility modules for data management operations.
"""

from .timing import TimingResult, BatchTimingResult, PerformanceTimer

__all__ = [
    'TimingResult',
    'BatchTimingResult',
    'PerformanceTimer'
]
