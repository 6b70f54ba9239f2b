import asyncio
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from backend.routes import router
from red_truth.config import load_config
from red_truth.game import Game
from red_truth.oracle import HttpOracle, Oracle

load_dotenv(Path(__file__).parent.parent / ".env")


def create_app(oracle: Oracle | None = None, step_delay: float | None = None) -> FastAPI:
    config = load_config()
    if oracle is None:
        oracle = HttpOracle(
            provider_url=config["oracle_url"],
            api_key=config["oracle_api_key"],
            provider_format=config["oracle_format"],
            model=config["oracle_model"],
            timeout=config["oracle_timeout"],
        )
    if step_delay is None:
        step_delay = config["tutorial_step_delay"]

    app = FastAPI(title="Red Truth")
    app.state.game = Game(oracle, step_delay=step_delay)
    app.state.busy = asyncio.Lock()
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (oracle settings from the environment)
app = create_app()
