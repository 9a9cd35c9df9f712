from clipguard.api.routes import router

__all__ = ["router"]
