"""Domain error types."""


class DomainError(Exception):
    """Base domain error."""
    pass


class NotFoundError(DomainError):
    """Resource not found."""
    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} with id {identifier} not found")


class ValidationError(DomainError):
    """Validation error."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UnknownCategoryError(ValidationError):
    """Category outside the closed notification category set."""
    def __init__(self, category: object):
        self.category = category
        super().__init__(f"Unknown notification category: {category!r}")

