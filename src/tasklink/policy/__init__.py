"""Field-level access rules."""
