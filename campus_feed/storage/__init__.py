"""Backend access: the data-store protocol and its implementations."""
