"""Worker pool, process wrapper, logging and reporting."""
