"""
Stock Kernel - batch and expiry ledger for clinic consumables.

An append-only usage ledger over batch-level stock with:
- Earliest-expiry-first debiting
- Atomic multi-line usage entries
- Per-item serialization of stock mutations
- Irreversible, archived disposal of expired batches
"""

__version__ = "0.1.0"
