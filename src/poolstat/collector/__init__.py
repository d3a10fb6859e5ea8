"""Metric publishing and the periodic sampling loop."""
