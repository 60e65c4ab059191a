"""Prometheus metrics for the campus feed client."""
