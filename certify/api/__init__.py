# HTTP surface of the registry
from .deps import NonceStore, SignedCommand, authenticate
from .routes import router

__all__ = ["NonceStore", "SignedCommand", "authenticate", "router"]
