class TrawlerError(Exception):
    """Base exception for acquisition errors."""

    def __init__(self, message: str, display_message: str = None):
        self.message = message
        self.display_message = display_message or message
        super().__init__(self.message)


class TransitionError(TrawlerError):
    """Raised when a request status change is refused."""

    def __init__(self, request_id: str, from_status, to_status, message: str):
        self.request_id = request_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(message)


class InvalidTransitionError(TransitionError):
    """Raised when the transition table has no such edge."""


class GuardRejectedError(TransitionError):
    """Raised when the edge exists but its guard refused the context."""


class CollaboratorError(TrawlerError):
    """Raised when an external service fails or times out."""

    collaborator = "collaborator"

    def __init__(self, message: str, display_message: str = None):
        super().__init__(f"{self.collaborator}: {message}", display_message)


class IndexerError(CollaboratorError):
    collaborator = "Indexer"


class CatalogError(CollaboratorError):
    collaborator = "Catalog"


class DownloadEngineError(CollaboratorError):
    collaborator = "Download engine"


class RequestNotFoundError(TrawlerError):
    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Request {request_id} not found")


class DuplicateRequestError(TrawlerError):
    """Raised when an active request already covers the same content."""

    def __init__(self, existing_id: str, title: str):
        self.existing_id = existing_id
        super().__init__(
            f"An active request for '{title}' already exists ({existing_id})",
            f"'{title}' is already being acquired.",
        )
