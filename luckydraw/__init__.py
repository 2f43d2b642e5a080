"""Live prize-drawing event engine."""
