"""Spatial maps."""
