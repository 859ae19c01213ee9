"""
API v1 Routes
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Router versione 1 dell'API.
"""

from fastapi import APIRouter

from app.api.v1 import documents

# Router aggregato per v1
api_v1_router = APIRouter(prefix="/api/v1")

api_v1_router.include_router(documents.router)

__all__ = ["api_v1_router"]
