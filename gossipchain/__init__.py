"""
GossipChain - proof-of-work ledger replicated over a gossip channel
"""

__version__ = "0.1.0"
