"""
Repositories over the principal stores.
"""

from pharmacare.repositories.principal_directory import (
    PrincipalDirectory,
    PrincipalRecord,
    PrincipalStore,
)

__all__ = ["PrincipalDirectory", "PrincipalRecord", "PrincipalStore"]
