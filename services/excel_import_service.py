"""
Excel Import Service - Framework-agnostic batch import logic.

Imports one workbook for a list of requested entity types, with progress
callback support for API and background-task integration.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from services.document_store import DocumentStore
from services.entity_config import get_entity_config, resolve_entity_type
from services.errors import SheetNotFoundError, UnknownEntityTypeError
from services.import_reconciler import EntityImportResult, ImportReconciler
from services.sheet_reader import open_workbook, read_sheet

logger = logging.getLogger(__name__)

EntityRequest = Union[str, Dict[str, Any]]


def normalize_entity_request(request: EntityRequest) -> Dict[str, Optional[str]]:
    """
    Accept ``'fuels'`` or ``{'type': 'fuels', 'sheetName': 'Fuel List'}``.

    Returns:
        ``{'type': ..., 'sheet_name': ... or None}``
    """
    if isinstance(request, str):
        return {'type': request, 'sheet_name': None}
    sheet_name = request.get('sheetName') or request.get('sheet_name') or None
    return {'type': request.get('type'), 'sheet_name': sheet_name}


class ExcelImportService:
    """
    Framework-agnostic Excel batch import service.

    One workbook handle is opened per batch and closed when the batch ends,
    whether it succeeds or fails.
    """

    def __init__(
        self,
        db_session: Session,
        progress_callback: Optional[Callable[[str, float, str], None]] = None,
        clock: Optional[Callable] = None
    ):
        """
        Initialize Excel import service.

        Args:
            db_session: SQLAlchemy database session
            progress_callback: Optional callback for progress updates
                              Signature: callback(stage: str, percent: float, message: str)
            clock: Optional timestamp source passed to the reconciler
        """
        self.session = db_session
        self.store = DocumentStore(db_session)
        self.progress_callback = progress_callback or (lambda *args: None)
        self.clock = clock

    def _emit_progress(self, stage: str, percent: float, message: str):
        """Emit progress update via callback."""
        self.progress_callback(stage, percent, message)
        logger.info(f"Progress: {stage} ({percent:.1f}%) - {message}")

    def import_entity(self, workbook, request: EntityRequest) -> EntityImportResult:
        """
        Import a single requested entity from an open workbook.

        Unknown entity types and missing sheets become the result's only
        error rather than exceptions.
        """
        request = normalize_entity_request(request)
        entity_type = resolve_entity_type(request['type'])
        if entity_type is None:
            error = UnknownEntityTypeError(str(request['type']))
            logger.warning(str(error))
            result = EntityImportResult(entity=str(request['type']))
            result.add_error(str(error))
            return result

        config = get_entity_config(entity_type)
        sheet_name = request['sheet_name'] or config.default_sheet_name

        try:
            rows = read_sheet(workbook, sheet_name)
        except SheetNotFoundError as e:
            logger.warning(f"{entity_type.value}: {e}")
            result = EntityImportResult(entity=entity_type.value)
            result.add_error(str(e))
            return result

        if not rows:
            logger.info(f"No data found in sheet '{sheet_name}'")
            return EntityImportResult(entity=entity_type.value)

        collection = self.store.collection(config.collection_name)
        reconciler = ImportReconciler(collection, config, clock=self.clock)
        return reconciler.reconcile(rows)

    def import_batch(self, file_path: str, entity_requests: List[EntityRequest]) -> List[EntityImportResult]:
        """
        Main batch import workflow.

        Args:
            file_path: Path to Excel file
            entity_requests: Entity types to import, each a type name or
                             ``{'type': ..., 'sheetName': ...}``

        Returns:
            One EntityImportResult per request, in request order

        Raises:
            StoreUnavailableError: if the database connection is lost
        """
        logger.info(f"Starting batch import of {file_path} for {len(entity_requests)} entities")
        results = []

        self._emit_progress('reading', 5, 'Opening workbook...')
        with open_workbook(file_path) as workbook:
            total = len(entity_requests)
            for index, request in enumerate(entity_requests):
                entity_name = normalize_entity_request(request)['type']
                percent = 10 + (85 * (index / total))
                self._emit_progress('importing', percent, f"Importing {entity_name}...")
                results.append(self.import_entity(workbook, request))

        self._emit_progress('complete', 100, 'Import complete')

        logger.info(
            f"Batch import complete: {sum(r.inserted for r in results)} inserted, "
            f"{sum(r.updated for r in results)} updated, {sum(r.skipped for r in results)} skipped"
        )
        return results


def import_batch(
    db_session: Session,
    file_path: str,
    entity_requests: List[EntityRequest],
    progress_callback: Optional[Callable[[str, float, str], None]] = None
) -> List[EntityImportResult]:
    """Run one batch import with a throwaway service instance."""
    service = ExcelImportService(db_session, progress_callback=progress_callback)
    return service.import_batch(file_path, entity_requests)
