"""
Command line interface for Quota Guard.
"""
