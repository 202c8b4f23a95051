"""Derive a split-tunnel VPN allow-list from recorded website traffic."""

__version__ = "0.1.0"
