"""
Inventory Kernel

Transactional core shared by the inventory modules:
- Exact fixed-point arithmetic (ScaledDecimal)
- Typed errors with machine-readable codes
- Structured JSON logging
- Units of work over SQLAlchemy or an in-memory store
- Append-only activity recording
"""

__version__ = "0.1.0"
