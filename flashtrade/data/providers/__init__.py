"""
MarketDataSource implementations.
"""
