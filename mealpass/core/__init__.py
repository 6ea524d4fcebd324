"""
Core infrastructure: database, exceptions, security, error handling.
"""
