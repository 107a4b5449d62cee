import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from simsala.catalog import CatalogRegistry
from simsala.config import get_config
from simsala.pipeline import build_profiles
from simsala.routes import router
from simsala.storage import Storage

load_dotenv(Path(__file__).parent.parent / ".env")

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def create_app(data_dir: Path | None = None) -> FastAPI:
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    resolved.mkdir(parents=True, exist_ok=True)

    config = get_config(resolved)
    catalog = CatalogRegistry()
    if config["catalog_dir"]:
        catalog_dir = Path(config["catalog_dir"])
        if catalog_dir.is_dir():
            catalog = CatalogRegistry.load_dir(catalog_dir)
        else:
            logger.warning("Catalog directory %s does not exist", catalog_dir)

    app = FastAPI(title="Simsala")
    app.state.data_dir = resolved
    app.state.storage = Storage(resolved)
    app.state.profiles = build_profiles(catalog)
    # None → built from settings on each request; tests put a stub here
    app.state.llm = None
    app.include_router(router, prefix="/api")
    return app
