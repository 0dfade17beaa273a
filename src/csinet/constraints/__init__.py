"""Error types and post-build invariant checks."""
