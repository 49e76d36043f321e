"""Mediation and sensitivity analyses."""
