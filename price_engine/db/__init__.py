"""Database layer: ORM models, connection management and repositories."""
