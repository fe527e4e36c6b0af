"""Gallery API routers."""
