"""HTTP layer for the session service.

Routers for the session endpoints and their administrative counterparts,
plus the FastAPI dependencies that wire the lifecycle manager per request.
"""
