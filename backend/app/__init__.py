"""LionSphere backend application."""
