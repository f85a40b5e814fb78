"""Domain modules for the Blink assistant."""
