"""In-memory cloud service stubs."""
