"""Core gameplay primitives (engine, scheduler, scoring, outcome events).

Kept free of FastAPI and Redis concerns so it can be driven by the API, a
replay script, or tests.
"""
