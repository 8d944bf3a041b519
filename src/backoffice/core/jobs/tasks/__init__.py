"""Background job task definitions."""
