"""
API Routes for Shelfmark

Route modules:
- books: ISBN lookup
- classification: DDC/LCC classification cascade
- marc: MARC21 export
- perpusnas: OAI-PMH harvest diagnostics
"""

from shelfmark.api.routes.books import router as books_router
from shelfmark.api.routes.classification import router as classification_router
from shelfmark.api.routes.marc import router as marc_router
from shelfmark.api.routes.perpusnas import router as perpusnas_router

__all__ = [
    "books_router",
    "classification_router",
    "marc_router",
    "perpusnas_router",
]
