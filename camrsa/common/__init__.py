"""Shared path helpers."""
