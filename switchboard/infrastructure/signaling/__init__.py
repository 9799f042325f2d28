"""Call signal transports and channel."""
