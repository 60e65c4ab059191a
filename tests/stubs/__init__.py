"""Factories for posts, comments and votes used across the test-suite."""
