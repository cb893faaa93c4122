"""
Core package for shared utilities.

Configuration, structured logging and token handling shared by every
service module of the backend.
"""
