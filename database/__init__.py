"""Database module for the PaySSD gateway."""

from .db import Database

__all__ = ['Database']
