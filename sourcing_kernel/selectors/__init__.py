"""Read-only query selectors."""

from sourcing_kernel.selectors.catalog_selector import CatalogSelector
from sourcing_kernel.selectors.history_selector import HistorySelector

__all__ = ["CatalogSelector", "HistorySelector"]
