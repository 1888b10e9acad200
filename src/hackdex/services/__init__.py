"""Services facade for hackdex.

Public API boundary for the CLI and other clients that need the local
catalog as a query backend.
"""

from hackdex.services.catalog import CatalogService

__all__ = ["CatalogService"]
