"""
High-level use cases for the Kraal backend.

Service modules orchestrate repositories and adapters to implement business
rules (sign-up, role changes, activation emails). Callers such as a web layer
use these services instead of touching the database directly.
"""
