"""Pure planning logic: byte ranges and part slicing. No hashing, no network."""
