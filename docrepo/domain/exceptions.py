class RepositoryException(Exception):
    """Base exception for all repository-related errors."""
    pass

class NotFoundOnMutationException(RepositoryException):
    """Raised when a by-id mutation matched no document."""
    def __init__(self, entity_id: str, message: str = "Mutation failed"):
        self.entity_id = entity_id
        super().__init__(f"{message}: no document matched id {entity_id!r}.")

class UpdateFailedException(NotFoundOnMutationException):
    """Raised when update_by_id matched no document."""
    def __init__(self, entity_id: str):
        super().__init__(entity_id, message="Update failed")

class DeleteFailedException(NotFoundOnMutationException):
    """Raised when delete_by_id matched no document."""
    def __init__(self, entity_id: str):
        super().__init__(entity_id, message="Delete failed")

class ConfigurationException(RepositoryException):
    """Raised when the store connection settings are incomplete."""
    pass
