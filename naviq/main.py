"""ASGI entry point: `uvicorn naviq.main:app` or `python -m naviq.main`."""

from __future__ import annotations

import logging
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from naviq.api import create_app
from naviq.settings import Settings

# Package-local .env first; neither overrides variables already exported.
load_dotenv(Path(__file__).with_name(".env"), override=False)
load_dotenv(override=False)

settings = Settings.from_env()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
app = create_app(settings)


if __name__ == "__main__":
    uvicorn.run("naviq.main:app", host=settings.api_host, port=settings.api_port, reload=settings.api_reload)
