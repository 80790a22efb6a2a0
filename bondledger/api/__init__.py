# HTTP surface for the token ledger

from .routes import router

__all__ = ["router"]
