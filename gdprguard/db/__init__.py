from gdprguard.db.base import Base
from gdprguard.db.session import get_db, get_engine, get_sessionmaker

__all__ = ["Base", "get_db", "get_engine", "get_sessionmaker"]
