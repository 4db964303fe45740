"""
asgi.py -- Application assembly for the portal.

The ASGI server imports the app from here so deployment config never needs to
know the package layout. api/main.py builds the complete app on its own.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
