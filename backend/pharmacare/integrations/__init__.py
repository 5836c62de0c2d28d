"""
External service integrations.
"""
