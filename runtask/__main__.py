"""Entry point: ``python -m runtask`` serves the receiver with uvicorn."""

import uvicorn

from runtask.config import load_config


def main() -> None:
    config = load_config()
    print(f"\nRun task receiver listening on http://{config.host}:{config.port}/\n")
    uvicorn.run("runtask.main:app", host=config.host, port=config.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
