"""Network templates, layouts and the topology builder."""
