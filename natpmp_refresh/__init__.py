"""Keep NAT-PMP port mappings alive by renewing them through a remote HTTP service."""

__version__ = "0.1.0"
