"""Repository layer for data access.

Repositories encapsulate database operations and provide a clean interface
for the catalog, registration and result operations used by the routes.
"""

from app.repositories.lab import LabRepository

__all__ = ["LabRepository"]
