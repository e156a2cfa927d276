"""Device-side command handling and local history capture."""
