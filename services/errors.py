"""
Exception types raised by the import pipeline.

Row-level errors are caught by the reconciler and recorded against the row;
entity-level errors are caught by the batch orchestrator and recorded against
the entity. Only StoreUnavailableError is allowed to escape a batch.
"""


class ImportPipelineError(Exception):
    """Base class for all import pipeline errors."""


class FieldValueError(ImportPipelineError, ValueError):
    """A required field is missing or cannot be coerced."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class MissingKeyError(FieldValueError):
    """The identity field(s) of a row could not be resolved."""

    def __init__(self, field: str):
        super().__init__(field, f"Missing {field}")


class SheetNotFoundError(ImportPipelineError):
    """Requested worksheet does not exist in the workbook."""

    def __init__(self, sheet_name: str):
        super().__init__(f'Sheet "{sheet_name}" not found in Excel file')
        self.sheet_name = sheet_name


class UnknownEntityTypeError(ImportPipelineError):
    """Entity type name is not registered."""

    def __init__(self, entity_type: str):
        super().__init__(f"Unknown entity type: {entity_type}")
        self.entity_type = entity_type


class StoreUnavailableError(ImportPipelineError):
    """The document store connection was lost; the batch cannot continue."""
