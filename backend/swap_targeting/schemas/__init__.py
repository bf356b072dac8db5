"""Pydantic Schemas — request/response validation for the targeting API.

Invariants:
    - Schemas validate at the system boundary (request bodies, query params, responses)
    - JSON field names are camelCase; Python attributes stay snake_case

Design Decisions:
    - Separate from models: schemas are API contracts, models are persistence
"""
