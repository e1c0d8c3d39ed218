"""FastAPI dependencies exposing the objects owned by the application.

`create_app` places the settings, the file storage and the AI corrector
on `app.state`; handlers reach them through these small accessors.
"""

from fastapi import Request

from .config import Settings
from .utils.ai_correction import TextCorrector
from .utils.storage import LocalFileStorage


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> LocalFileStorage:
    return request.app.state.storage


def get_corrector(request: Request) -> TextCorrector:
    return request.app.state.corrector


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"
