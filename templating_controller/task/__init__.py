"""Task tracking module for templating-controller.

This module provides a simple task tracking service that allows the
controller to run reconciles in the background and callers to wait for them.
"""

from .context import task_service_context, get_task_service
from .service import TaskService

__all__ = ["get_task_service", "task_service_context", "TaskService"]
