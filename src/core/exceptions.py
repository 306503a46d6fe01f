"""Domain errors raised by the CRUD layer; mapped to HTTP 404 by the error handler."""

from typing import Any


class DomainError(Exception):
    """Base class for domain-specific errors."""

    pass


class NotFoundError(DomainError):
    """A menu or cart looked up by id does not exist."""

    resource = "Resource"

    def __init__(self, resource_id: Any):
        self.resource_id = resource_id
        super().__init__(f"{self.resource} {resource_id} not found")


class MenuNotFoundError(NotFoundError):
    resource = "Menu"


class CartNotFoundError(NotFoundError):
    resource = "Cart"
