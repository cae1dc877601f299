"""
Inventory Modules.

Domain areas built on the inventory kernel and engines.  Each module
contains:
- Domain models (frozen dataclasses)
- ORM models and repositories (SQL and in-memory)
- Configuration schema
- A service that owns the module's units of work

Modules:
- Catalog: products and their cost prices
- Stock: warehouses, stock locations, movements, the stock ledger
- Manufacturing: bills of materials, explosion and costing
- Procurement: purchase orders, approval workflow, goods receipt
"""
