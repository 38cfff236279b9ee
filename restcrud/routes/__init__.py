"""API routes."""

from fastapi import APIRouter

from restcrud.controllers.phrases import PhraseController

api_router = APIRouter()

# Phrase list CRUD
api_router.include_router(PhraseController.build_router(), prefix="/v1/phrases", tags=["phrases"])
