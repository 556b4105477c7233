"""Service layer - use cases orchestrated over repositories."""

from .workflow_service import WorkflowService


__all__ = ["WorkflowService"]
