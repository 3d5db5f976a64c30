"""Grouping of matched objects into multipart assemblies."""

from .models import Group, Job, TargetPlan
from .planner import MAX_PART_SIZE, MAX_PARTS, MIN_PART_SIZE, GroupPlanner, collect_jobs, numbered_target_key

__all__ = [
    "Group",
    "Job",
    "TargetPlan",
    "GroupPlanner",
    "collect_jobs",
    "numbered_target_key",
    "MAX_PARTS",
    "MAX_PART_SIZE",
    "MIN_PART_SIZE",
]
