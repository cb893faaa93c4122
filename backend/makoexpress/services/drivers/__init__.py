"""Drivers service package."""
