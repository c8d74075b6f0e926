"""
SmartLedger - Personal Bookkeeping Engine

Records income, expense and transfer events against user-defined
accounts and keeps live balances for them.

DESIGN PRINCIPLES:
1. Balances are derived from the log, never stored
2. Every operation returns a new snapshot
3. Bad imported rows are skipped and reported, never guessed at
4. AI drafts entries; only the user saves them
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "SmartLedger Team"
