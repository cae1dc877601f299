"""Kernel-owned ORM models."""

from inventory_kernel.models.activity_log import ActivityAction, ActivityLogModel

__all__ = ["ActivityAction", "ActivityLogModel"]
