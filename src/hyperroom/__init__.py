"""HyperRoom: a chat room that hosts nested tic-tac-toe matches between its members."""

from .board import create_empty
from .config import Settings
from .room import Room
from .server import app, create_app

__all__ = ["Room", "Settings", "app", "create_app", "create_empty"]
