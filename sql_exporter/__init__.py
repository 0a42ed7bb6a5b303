"""Periodically run SQL queries and expose their results as metrics."""
