"""Workflow use cases: store the canvas components of a diagram."""

from __future__ import annotations

from collections.abc import Sequence
import logging

from diagram_store.adapters.repository import AbstractRepository
from diagram_store.domain.components import CanvasComponent
from diagram_store.domain.model import CreateRequest, KeyValue, Record


logger = logging.getLogger(__name__)


class WorkflowService:
    """Canvas component persistence, one repository call per component.

    Calls run in input order. A failure stops the remaining components;
    those already written stay written.
    """

    def __init__(self, repository: AbstractRepository) -> None:
        self.repository = repository

    async def create(self, components: Sequence[CanvasComponent]) -> list[KeyValue]:
        created = []
        for component in components:
            created.append(await self.repository.create(CreateRequest(value=component.to_record())))
        logger.info("Created %d workflow components", len(created))
        return created

    async def list(self) -> list[Record]:
        return [entry.value for entry in await self.repository.many_read()]

    async def update(self, components: Sequence[CanvasComponent]) -> list[KeyValue]:
        """Merge each component into its stored document, addressed by ``_id``."""
        updated = []
        for component in components:
            updated.append(await self.repository.update(component.to_record()))
        logger.info("Updated %d workflow components", len(updated))
        return updated

    async def delete(self, document_ids: Sequence[str]) -> list[bool]:
        deleted = [await self.repository.delete(document_id) for document_id in document_ids]
        logger.info("Deleted %d of %d workflow components", sum(deleted), len(deleted))
        return deleted
