"""Gridlords: a two-sided territorial-control game on a small square grid."""

__version__ = "1.0.0"
