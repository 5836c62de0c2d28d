"""
HTTP API.
"""
