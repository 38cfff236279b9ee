"""Generic REST CRUD controllers for FastAPI over async SQLAlchemy."""

__version__ = "0.1.0"
