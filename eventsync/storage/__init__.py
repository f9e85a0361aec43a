"""
Persistence layer.

This package contains:
- models.py: SQLAlchemy models and write-time validation
- database.py: Engine and session management
- repository.py: EventStore query layer
"""
