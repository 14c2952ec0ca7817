"""Aura workers: pattern and achievement detection over health timeline events."""
