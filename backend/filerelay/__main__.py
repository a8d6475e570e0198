"""Run the relay with uvicorn: ``python -m filerelay``."""
import uvicorn

from filerelay.config import get_config


def main() -> None:
    config = get_config()
    uvicorn.run(
        "filerelay.main:app",
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
    )


if __name__ == "__main__":
    main()
