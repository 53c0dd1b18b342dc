"""Persistence layer: declarative models plus the process-wide DBStorage."""
from models.db_storage import DBStorage

storage = DBStorage()
storage.reload()
