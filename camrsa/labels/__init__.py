"""Case definition."""
