from .base import BaseRepository
from .user import UserRepo

__all__ = ["BaseRepository", "UserRepo"]
