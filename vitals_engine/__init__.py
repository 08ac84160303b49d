"""Clinical rule evaluation and action dispatch for patient vitals.

This package contains the business logic and domain models,
isolated from storage and delivery concerns for easy testing and reasoning.
"""
