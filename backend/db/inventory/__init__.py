"""
Inventory catalog.

Models:
- InventoryItem (one row per SKU with its quantity on hand)
- InventoryMovement (append-only audit of every quantity change)
"""
