"""
API routers package.
Each router handles a specific domain of endpoints.
"""

from notebypine.routers import auth, export, incidents, knowledge, search, solutions

__all__ = [
    "auth",
    "export",
    "incidents",
    "knowledge",
    "search",
    "solutions",
]
