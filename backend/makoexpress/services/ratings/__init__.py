"""Ratings service package."""
