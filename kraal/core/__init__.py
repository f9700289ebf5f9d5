"""
Core utilities shared across the Kraal backend.

This package hosts configuration (env vars), logging setup and the SMTP
mailer adapter. Services depend on these primitives instead of reading the
environment or talking to SMTP directly.
"""
