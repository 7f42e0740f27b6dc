"""
Application wiring: lifespan, middlewares, CORS.
"""
