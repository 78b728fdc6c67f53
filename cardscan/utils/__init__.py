"""Geometry and visualization helpers."""
