"""HTTP surface for the conversion service."""
