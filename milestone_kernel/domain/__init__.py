"""
Pure domain layer.

Statuses, transition graphs, vote tallies, minting rules and DTOs, with no
dependency on the ORM, the database or I/O (the Clock interface aside).
"""
