"""
Chain synchronization between peers
"""
