"""
Node configuration and logging setup
"""
