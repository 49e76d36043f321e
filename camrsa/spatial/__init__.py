"""MSSA adjacency graph."""
