"""Request-path services: rate limiting, auth and aggregation."""
