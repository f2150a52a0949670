"""Feature packages for AutoCoder: archive import and workspace tree operations."""
