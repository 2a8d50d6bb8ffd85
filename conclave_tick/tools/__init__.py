"""Operator tooling for the Conclave tick."""
