from __future__ import annotations

import os

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

_DEV_ORIGINS = [
    "http://localhost:5173",  # Vite default
    "http://localhost:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
]


def add_default_middlewares(app: FastAPI) -> None:
    # CORS_ORIGINS (comma separated) wins; otherwise local dev servers in
    # development/staging and any origin elsewhere
    configured = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]
    if configured:
        allowed_origins = configured
    elif os.getenv("ENV", "development") in ("development", "staging"):
        allowed_origins = _DEV_ORIGINS
    else:
        allowed_origins = ["*"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=allowed_origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
