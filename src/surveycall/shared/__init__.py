"""
Shared utilities and infrastructure components (settings-aware logging, database, errors).
"""
