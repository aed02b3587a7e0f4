import argparse
import logging
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv

load_dotenv(ROOT / ".env")

from semantic_search.app import create_app
from semantic_search.config import SearchConfig
from semantic_search.logging_config import get_logger, setup_logging
import uvicorn

logger = get_logger("scripts.search_service")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the semantic search HTTP service.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8080)
    parser.add_argument("--no-seed", action="store_true", help="Skip loading the seed documents")
    parser.add_argument("--log-file", type=Path, default=None)
    parser.add_argument("--debug", action="store_true")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    setup_logging(
        level=logging.DEBUG if args.debug else logging.INFO,
        log_file=args.log_file,
    )
    config = SearchConfig.from_env()
    if args.no_seed:
        config.seed_on_startup = False
    logger.info(
        "Starting search service (collection=%s, provider=%s)",
        config.collection_name, config.embedding_provider,
    )
    app = create_app(config)
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
