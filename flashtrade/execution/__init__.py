"""
Execution gateway implementations.
"""
