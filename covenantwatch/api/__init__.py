"""HTTP layer: FastAPI routers over CovenantWatchService."""
