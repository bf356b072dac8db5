"""API — FastAPI routers, dependencies, middleware and error handlers.

Invariants:
    - Routes are thin: validate, resolve dependencies, delegate to services
    - Every JSON response uses the {success, data | error, metadata} envelope
"""
