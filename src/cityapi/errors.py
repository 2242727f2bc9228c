class ServiceError(Exception):
    """Base error translated to a JSON error response at the HTTP boundary."""

    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message or self.__class__.__name__

    def __str__(self) -> str:
        return self.message


class ConfigError(ServiceError):
    """The environment does not describe a usable database target."""


class DatabaseError(ServiceError):
    """Connecting to PostgreSQL or running a statement failed."""
