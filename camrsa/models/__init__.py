"""Bayesian logistic models."""
