"""
Import Reconciler - upsert transformed spreadsheet rows into a collection.

Rows are processed one at a time: transform, resolve identity, look up,
then update or insert. A failing row is recorded and skipped; the rows
around it are unaffected.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from services.document_store import DocumentCollection
from services.entity_config import EntityConfig
from services.errors import ImportPipelineError, StoreUnavailableError

logger = logging.getLogger(__name__)

# Row 1 is the header row; used for rows without a worksheet row number
HEADER_ROW_OFFSET = 2


@dataclass
class EntityImportResult:
    """Outcome of importing one entity's sheet."""

    entity: str
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.inserted + self.updated + self.skipped

    def add_error(self, message: str, row: Optional[int] = None):
        if row is None:
            self.errors.append({'error': message})
        else:
            self.errors.append({'row': row, 'error': message})

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entity': self.entity,
            'inserted': self.inserted,
            'updated': self.updated,
            'skipped': self.skipped,
            'errors': list(self.errors),
        }


def _store_error_message(exc: SQLAlchemyError) -> str:
    orig = getattr(exc, 'orig', None)
    return str(orig) if orig is not None else str(exc)


class ImportReconciler:
    """
    Reconcile spreadsheet rows against one collection.

    Args:
        collection: Target collection
        config: Entity configuration used to transform rows
        clock: Returns the timestamp stamped on each row (default: utcnow)
    """

    def __init__(
        self,
        collection: DocumentCollection,
        config: EntityConfig,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.collection = collection
        self.config = config
        self.clock = clock or datetime.utcnow

    def reconcile(self, rows: List[Dict[str, Any]]) -> EntityImportResult:
        """
        Upsert every row, in order.

        Errors are reported against each row's worksheet row number when
        the row carries one (SheetRow), else against its position after
        the header row.

        Returns:
            EntityImportResult with counts and ``{row, error}`` entries

        Raises:
            StoreUnavailableError: if the store connection is lost
        """
        result = EntityImportResult(entity=self.config.entity_type.value)
        logger.info(f"Reconciling {len(rows)} {result.entity} rows into {self.collection.name}")

        for index, row in enumerate(rows):
            row_number = getattr(row, 'row_number', index + HEADER_ROW_OFFSET)
            try:
                document = self.config.transform(row, now=self.clock())
                identity = self.config.identity(document)
            except StoreUnavailableError:
                raise
            except (ImportPipelineError, ValueError) as e:
                logger.warning(f"{result.entity} row {row_number} skipped: {e}")
                result.skipped += 1
                result.add_error(str(e), row=row_number)
                continue

            try:
                if self.collection.find_one(identity) is not None:
                    fields = {k: v for k, v in document.items() if k != 'created_at'}
                    self.collection.update_fields(identity, fields)
                    result.updated += 1
                    logger.debug(f"{result.entity} row {row_number} updated {identity}")
                else:
                    self.collection.insert(document)
                    result.inserted += 1
                    logger.debug(f"{result.entity} row {row_number} inserted {identity}")
            except (SQLAlchemyError, ValueError) as e:
                message = _store_error_message(e) if isinstance(e, SQLAlchemyError) else str(e)
                logger.warning(f"{result.entity} row {row_number} rejected by store: {message}")
                result.skipped += 1
                result.add_error(message, row=row_number)

        logger.info(
            f"{result.entity}: {result.inserted} inserted, {result.updated} updated, "
            f"{result.skipped} skipped"
        )
        return result
