"""Core utilities: errors, context, actors, timers and events."""
