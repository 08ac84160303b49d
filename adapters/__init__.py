"""Implementations of the rules engine's collaborator protocols."""
