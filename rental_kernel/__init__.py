"""
Rental Kernel

Shared foundation for the rental billing engine:
- Structured JSON logging with request-scoped context
- Typed exception hierarchy with stable error codes
- Injectable clock for deterministic time
- SQLAlchemy declarative base, engine and session scope
"""

__version__ = "0.1.0"
