class EnvNotFoundError(Exception):
    """Raised when a required environment variable is not found."""

    def __init__(self, env_var_name: str):
        super().__init__(f"Environment variable '{env_var_name}' not found.")


class NoSessionError(Exception):
    """Raised when there is no active database session."""

    def __init__(self):
        super().__init__("No active database session found.")


class SessionNotSetError(Exception):
    """Raised when the database session is not set."""

    def __init__(self):
        super().__init__("Database session is not set.")


class MissingDBUrlError(Exception):
    """Raised when no database URL is configured."""

    def __init__(self):
        super().__init__("Database URL is not configured.")


class MissingPrimaryKeyError(Exception):
    """Raised when an entity type declares no primary key and has no registered key extractor."""

    def __init__(self, type_name: str):
        super().__init__(f"Type '{type_name}' declares no primary key and has no registered key extractor.")


class EntityNotFoundError(Exception):
    """Raised when an entity looked up by its primary key does not exist."""

    def __init__(self, type_name: str, _id: object):
        super().__init__(f"No '{type_name}' entity found for primary key {_id!r}.")


class RepositoryClosedError(Exception):
    """Raised when a repository is used after it has been closed."""

    def __init__(self, type_name: str):
        super().__init__(f"Repository for '{type_name}' is already closed.")


class EntityValidationError(Exception):
    """Raised when pending entities fail pre-commit validation."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        errors_str = "; ".join(errors)
        super().__init__(f"Entity validation failed: {errors_str}")


class StateDeserializationError(Exception):
    """Raised when a serialized state payload cannot be reconstructed."""

    def __init__(self, size: int):
        super().__init__(f"Could not deserialize state payload of {size} bytes.")


class UnserializableStateError(TypeError):
    """Raised when a value bound to a serialized state column cannot be serialized."""

    def __init__(self, type_name: str):
        super().__init__(f"Value of type '{type_name}' is not serializable.")


class ForeignSessionError(Exception):
    """Raised when an entity tracked by another session is passed to a repository."""

    def __init__(self, type_name: str):
        super().__init__(f"'{type_name}' entity is already attached to another session.")
