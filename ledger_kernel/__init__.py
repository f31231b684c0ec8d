"""
Ledger Kernel -- multi-tenant accounting core.

A small double-entry general ledger with:
- Hierarchical chart of accounts with normal-balance posting
- Atomic, balanced, sequentially numbered journal entries
- Reversal instead of mutation
- Per-month financial period locking with owner override
- Staged opening balances posted through the same ledger path
"""

__version__ = "0.1.0"
