"""
Market data collaborators.
"""
