"""Core Domain Layer — pure functions, types and errors (no IO).

Invariants:
    - Nothing in core/ imports from services/, api/, models/ or infrastructure/
    - Every function here can be tested without a database

Design Decisions:
    - Functional core, imperative shell: services orchestrate IO around these checks
"""
