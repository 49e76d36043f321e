"""Recoding, covariate sets and design matrices."""
