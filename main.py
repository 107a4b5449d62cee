"""Simsala — dev launcher. Starts the API server in watch mode."""

import argparse
import logging
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "13015"))


def main():
    parser = argparse.ArgumentParser(description="Simsala dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--catalog-dir", type=Path, default=None,
                        help="Catalog directory to store in settings before starting")
    parser.add_argument("--log-level", default="INFO",
                        help="Logging level (default: INFO)")
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    data_dir = (args.data_dir or ROOT / "data").resolve()
    # The app factory reads the data dir from the environment on reload
    os.environ["DATA_DIR"] = str(data_dir)

    if args.catalog_dir:
        from simsala.config import update_config
        update_config(data_dir, {"catalog_dir": str(args.catalog_dir.resolve())})

    print(f"Starting Simsala on http://localhost:{PORT} ...")
    uvicorn.run("simsala.app:create_app", factory=True, reload=True, host=HOST, port=PORT)


if __name__ == "__main__":
    main()
