"""
Infrastructure Layer

Recovery mechanisms (retry, circuit breaker, fallback), their configuration
and structured logging.
"""
