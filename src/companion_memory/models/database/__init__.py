# src/companion_memory/models/database/__init__.py

# Import all models so SQLAlchemy can find them
from .memory import Memory

__all__ = ["Memory"]
