"""
FastAPI Dependencies for MCAT Prep
"""

from mcatprep.dependencies.auth import (
    get_current_user,
)

__all__ = [
    "get_current_user",
]
