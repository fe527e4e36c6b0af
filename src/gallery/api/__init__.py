"""Gallery HTTP API."""
