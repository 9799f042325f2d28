"""Message transports."""
