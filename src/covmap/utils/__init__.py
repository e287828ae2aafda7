"""Utility modules for covmap."""
