from typing import List, Union


class BugTrackerException(Exception):
    """Base exception for all bug tracker errors."""
    pass

class ConfigurationException(BugTrackerException):
    """Raised when required settings are missing or malformed."""
    pass

class ValidationException(BugTrackerException):
    """Raised when input fails validation. Nothing has been written when this is raised."""
    def __init__(self, errors: Union[str, List[str]]):
        self.errors = [errors] if isinstance(errors, str) else list(errors)
        super().__init__("; ".join(self.errors))

class BugNotFoundException(BugTrackerException):
    """Raised when no bug exists with the requested ID."""
    def __init__(self, bug_id: str):
        self.bug_id = bug_id
        super().__init__(f"Bug with ID {bug_id} not found")

class DatabaseException(BugTrackerException):
    """Raised when a database operation fails."""
    pass

class DatabaseConnectionException(DatabaseException):
    """Raised when the database is unreachable or the gateway is not connected."""
    pass

class TransactionException(DatabaseException):
    """Raised when a transaction is aborted. The transaction has been rolled back."""
    pass
