"""
Purge Kernel - shared infrastructure for bulk record jobs.

Provides:
- Typed exceptions with machine-readable codes
- Structured JSON logging with context propagation
- Injectable clocks for deterministic timestamps
- SQLAlchemy declarative base and engine helpers
"""

__version__ = "0.1.0"
