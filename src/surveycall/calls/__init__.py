"""
Call queue management.

NOTE:
This package __init__ MUST stay lightweight. Importing ORM models here would
trigger mapping as a side effect of importing any submodule.
"""

__all__: list[str] = []
