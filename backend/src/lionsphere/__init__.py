"""LionSphere realtime building blocks."""
