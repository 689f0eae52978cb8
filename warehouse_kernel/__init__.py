"""
Warehouse Kernel

Persistence, value types and error vocabulary for a trading-card warehouse:
- Physical lots with capacity-checked drawer locations
- Signed per-SKU balances
- Idempotent FIFO consumption of logged sales
- Append-only inventory transaction ledger
"""

__version__ = "0.1.0"
