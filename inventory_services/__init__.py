"""
Inventory Services.

Units of work (``unit_of_work``) and the service container (``core``).
Importing this package has no side effects; import the submodules
directly.
"""
