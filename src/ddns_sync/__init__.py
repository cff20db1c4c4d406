"""ddns-sync: keep DNS address records pointed at the host's public IP."""

__version__ = "0.1.0"
