"""Pure domain value objects for the inventory kernel."""
