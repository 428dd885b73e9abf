"""
Server package exposing the FastAPI app, room registry and dispatcher.
"""

from .app import app, create_app  # noqa: F401
from .dispatcher import EventDispatcher  # noqa: F401
from .registry import RoomRegistry  # noqa: F401
