"""
Off-ledger agents (local oracle relayer).
"""
