from app.routers import fraud, health

__all__ = [
    "fraud",
    "health",
]
