"""Shared HTTP fetching and resilience helpers."""
