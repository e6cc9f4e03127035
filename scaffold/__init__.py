"""
Student Service Scaffold

FastAPI service wired to PostgreSQL, Redis and OpenTelemetry tracing with a
layered repository / service / handler structure.
"""

__version__ = "0.1.0"
