"""FastAPI gateway: server, settings, errors, middleware, metrics."""
