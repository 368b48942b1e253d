"""Ingestion: paginated collectors, rate limiting and retry handling."""
