"""Subnet allocation over a parent network."""
