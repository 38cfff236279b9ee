"""REST controllers.

Controllers are thin: they read the request into a DTO, call a service and
shape the JSON response. Business rules belong in services.
"""

from restcrud.controllers.base import ACTIONS, RestCrudController

__all__ = ["ACTIONS", "RestCrudController"]
