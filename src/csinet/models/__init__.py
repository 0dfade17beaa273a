"""Address, subnet, VLAN and hardware models."""
