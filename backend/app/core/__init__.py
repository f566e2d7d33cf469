"""Core utilities for the LionSphere backend."""
