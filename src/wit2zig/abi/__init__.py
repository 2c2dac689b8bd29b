"""Canonical ABI: signatures and lowering/lifting instruction sequences."""
