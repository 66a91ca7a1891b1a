"""
Ledger core: blocks, mining, validation and chain state
"""
