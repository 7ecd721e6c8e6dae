"""Game domain services: state machine, answer aggregation, scoring, queries.

This package contains the domain logic that HTTP routes and socket handlers
import, keeping transport concerns separated from core game mechanics.
"""
