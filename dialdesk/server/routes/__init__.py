"""Route registration for the DialDesk API."""

from fastapi import FastAPI

from .chat import router as chat_router
from .issues import router as issues_router


def register_routes(app: FastAPI):
    app.include_router(chat_router)
    app.include_router(issues_router)
