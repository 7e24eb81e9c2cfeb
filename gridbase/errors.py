class GridbaseError(Exception):
    """Base class for all gridbase errors."""
    pass


class NotFoundError(GridbaseError):
    """Raised when a table, column, row, option, view or file reference does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class NotConfiguredError(GridbaseError):
    """Raised when file storage is used without a File Storage Adapter."""

    def __init__(self, message: str = "File adapter not configured. Provide a FileStorageAdapter to enable file uploads."):
        super().__init__(message)


class ValidationFailure(GridbaseError):
    """Raised when an input is structurally invalid for the target entity."""
    pass


class HierarchyCycleError(ValidationFailure):
    """Raised when walking parent links revisits a row."""

    def __init__(self, row_id: str):
        self.row_id = row_id
        super().__init__(f"Cycle detected in row hierarchy at row {row_id}")


class FormulaError(GridbaseError):
    """Raised when a formula cannot be evaluated."""
    pass


class FormulaSyntaxError(FormulaError):
    """Raised when a formula expression cannot be parsed."""
    pass


class RemoteServiceError(GridbaseError):
    """Raised when the remote backend answers with an unexpected error."""

    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Remote service error {status_code}: {detail}")
