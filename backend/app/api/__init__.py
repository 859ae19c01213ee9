"""
API Routes
Progetto: Gestionale Documenti (Motore Documenti Commerciali)

Modulo per l'aggregazione dei router versionati.
"""

from app.api.v1 import documents

__all__ = ["documents"]
