"""
Billing Kernel - academic period and document ledger engine.

- A single globally active academic period with an explicit lifecycle
- Collision-free, gap-tolerant document numbering per period and kind
- Ledger scopes tying a party's documents and payments to a period
- Running-balance statements for receivable and payable parties
"""

__version__ = "0.1.0"
