"""
Core infrastructure: configuration, logging, exceptions and tracing.
"""
