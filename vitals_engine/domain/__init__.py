"""Domain models, collaborator protocols and exceptions for the rules engine."""
