"""Core reconciliation logic for gitopsctl."""
