class NotFoundError(Exception):
    """Business error: the requested entity does not exist."""

    entity = "Entity"

    def __init__(self, entity_id):
        self.entity_id = entity_id
        super().__init__(f"{self.entity} with ID {entity_id} not found")


class TaskNotFoundError(NotFoundError):
    entity = "Task"


class ProjectNotFoundError(NotFoundError):
    entity = "Project"


class UserNotFoundError(NotFoundError):
    entity = "User"


class CacheUnavailableError(Exception):
    """Raised by cache store adapters when the backend cannot be reached."""
