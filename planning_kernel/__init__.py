"""
Planning Kernel

Shared foundation for the drug budget planning engine:
- Typed, coded exceptions
- Structured JSON logging with request-scoped context
- SQLAlchemy declarative base and engine/session management
- Pure domain values (clock, validation errors, workflow types, SSCJ layout)
"""

__version__ = "0.1.0"
