"""Error kinds surfaced by the content search service.

Each kind maps to one HTTP outcome:

- ``ValidationError``: missing or malformed input, 400 with the message.
- ``NotFoundError``: update/delete target absent, 404 with the message.
- ``StorageError``: storage collaborator failure, 500 with a generic
  message; the detail is logged only.
"""


class SearchServiceError(Exception):
    """Base class for service errors."""


class ValidationError(SearchServiceError, ValueError):
    """Raised when a request parameter or payload is missing or malformed."""


class NotFoundError(SearchServiceError, LookupError):
    """Raised when the addressed content record does not exist."""


class StorageError(SearchServiceError, RuntimeError):
    """Raised when the storage collaborator fails."""
