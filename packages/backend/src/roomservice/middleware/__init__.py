"""ASGI middleware: request ids and security headers."""
