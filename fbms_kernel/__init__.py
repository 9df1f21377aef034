"""
FBMS Ledger Kernel

The transactional core of the FBMS point-of-sale and inventory system:
- Role-based account resolution
- Balanced, immutable journal entries
- Reversing entries for corrections
- Structured logging and typed errors
"""

__version__ = "0.1.0"
