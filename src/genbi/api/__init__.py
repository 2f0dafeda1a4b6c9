"""GenBI API routes shared across modules."""
