"""
Network collaborators used by the synchronization layer
"""
