"""Infrastructure — database sessions, logging setup, outbound notification adapters.

Invariants:
    - Infrastructure modules never contain targeting business rules
"""
