"""Tool-specific jobs built on the worker pool and merge modules."""
