"""Data stores for persistence and caching.

Stores handle:
- PostgreSQL: DB session, ORM operations
- Redis: caching, TTL policies

No business logic in stores - that belongs in services.
"""
