"""Scheduling utilities for recurring cashback jobs."""

from .config import JobDefinition, load_job_definitions
from .runner import CashbackJobScheduler

__all__ = ["CashbackJobScheduler", "JobDefinition", "load_job_definitions"]
