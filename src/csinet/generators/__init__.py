"""Output generators for built networks."""
