"""Scheduling package."""

from .scheduler import JobScheduler, dump_args, load_args
from .runner import JobRunner

__all__ = ["JobScheduler", "JobRunner", "dump_args", "load_args"]
