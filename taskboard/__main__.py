import uvicorn

from . import config
from .logging import setup_logging


def run() -> None:
    setup_logging(config.LOG_LEVEL)
    uvicorn.run("taskboard.main:app", host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    run()
