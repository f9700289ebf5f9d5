"""Kraal accounts backend: users, profiles, roles and activation tokens."""

__version__ = "0.1.0"
