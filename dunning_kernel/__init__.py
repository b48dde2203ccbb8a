"""
Dunning Kernel

Shared foundation for the payment-reminder system:
- Structured JSON logging with request-scoped context
- Typed exception hierarchy with machine-readable codes
- Injectable clocks and a static currency rate table
- Record Store abstraction with in-memory and SQL backends
"""

__version__ = "0.1.0"
