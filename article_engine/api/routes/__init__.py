from . import jobs, tasks

__all__ = ["jobs", "tasks"]
