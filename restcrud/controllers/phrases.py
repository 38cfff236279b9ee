"""Phrase CRUD endpoints (mounted at /v1/phrases)."""

from restcrud.controllers.base import RestCrudController
from restcrud.services.phrases import PhraseService


class PhraseController(RestCrudController):
    service_class = PhraseService
