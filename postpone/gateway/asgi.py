from __future__ import annotations

from postpone.config import load_config
from postpone.storage import build_repository

from .app import create_app

app = create_app(build_repository(load_config()))
