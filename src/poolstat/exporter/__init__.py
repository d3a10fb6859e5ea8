"""Exporters that hand published metrics to collectors and files."""
