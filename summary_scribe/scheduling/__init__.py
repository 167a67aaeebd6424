"""
Scheduling for background delivery retries.
"""

from .scheduler import RetrySweepScheduler, SWEEP_JOB_ID

__all__ = [
    'RetrySweepScheduler',
    'SWEEP_JOB_ID',
]
