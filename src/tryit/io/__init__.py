"""I/O - trace storage backends."""
