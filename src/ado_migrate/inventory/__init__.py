"""Source inventory discovery."""

from .inspector import InventoryService

__all__ = ['InventoryService']
