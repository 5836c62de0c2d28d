"""
Batch jobs.
"""
