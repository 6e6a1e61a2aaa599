"""
Wallet and ledger persistence.
"""
