"""Result plots."""
