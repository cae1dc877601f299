"""Kernel services shared by all modules."""
