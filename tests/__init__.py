"""
FlashTrade Test Suite

- unit: Unit tests for individual components
- integration: Integration tests for the agent runtime driving its collaborators
"""
