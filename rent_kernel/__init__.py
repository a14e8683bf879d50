"""
Rent Kernel

The domain and persistence core of the rent ledger:
- Month-granular value objects and effective-dated rent history
- Typed, coded exceptions for every rejection path
- Structured JSON logging
- ORM models, engine/session management and read-only selectors
"""

__version__ = "0.1.0"
