# exceptions.py

class PermanentError(Exception):
    """An error that will not be fixed by a retry (e.g., a missing file)."""
    pass

class TransientError(Exception):
    """A temporary error (e.g., a network failure) that might resolve on a retry."""
    pass


class ItemNotFoundError(PermanentError):
    """The provider reported that the requested file or folder does not exist."""

    def __init__(self, file_id: str, detail: str = ""):
        self.file_id = file_id
        self.detail = detail
        message = f"Item '{file_id}' not found in Google Drive."
        if detail:
            message = f"{message} {detail}"
        super().__init__(message)


class ConfirmationRequiredError(PermanentError):
    """A destructive operation was requested without an explicit confirmation."""
    pass


class ProviderTransportError(TransientError):
    """The provider was unreachable, rejected the credentials or returned a server error."""

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        super().__init__(message)


class OperationCancelledError(TransientError):
    """The caller cancelled a long-running operation before it finished."""
    pass
