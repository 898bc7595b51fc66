"""CORS middleware configuration"""
from fastapi.middleware.cors import CORSMiddleware
from typing import List
from chatbuddy.config import get_settings

LOOPBACK_ALIASES = (("://localhost", "://127.0.0.1"), ("://127.0.0.1", "://localhost"))


def expand_origins(origins: List[str]) -> List[str]:
    """Allow localhost and 127.0.0.1 interchangeably for every listed origin"""
    expanded = []
    for origin in origins:
        origin = origin.rstrip("/")
        if origin not in expanded:
            expanded.append(origin)
        for source, target in LOOPBACK_ALIASES:
            if source in origin:
                alias = origin.replace(source, target, 1)
                if alias not in expanded:
                    expanded.append(alias)
    return expanded


def setup_cors(app):
    """
    Configure CORS middleware for the application

    Args:
        app: FastAPI application instance
    """
    origins = expand_origins(get_settings().cors_origins)
    allow_all = "*" in origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else origins,
        allow_credentials=not allow_all,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
