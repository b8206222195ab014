"""homefleet - provisioning and certificate upkeep for a homelab fleet."""

__version__ = "0.1.0"
