"""Order events — channel naming and the publish boundary for order changes."""
