"""HTTP layer: FastAPI routers and request-scoped plumbing."""
