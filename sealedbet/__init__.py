"""
sealedbet: sealed-score prediction market with an oracle decryption protocol.

Parties stake on encrypted score predictions per batch; once a batch closes,
its result ciphertexts are sent to a decryption oracle and the asynchronous,
proof-carrying callback finalizes the batch exactly once.
"""

__version__ = "0.1.0"
