from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from capcom.config import Settings, load_settings
from capcom.routes import router
from capcom.runtime import Simulation

load_dotenv(Path(__file__).parent.parent / ".env")


def create_app(settings: Settings | None = None, simulation: Simulation | None = None) -> FastAPI:
    sim = simulation or Simulation(settings or load_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sim.start()
        yield
        await sim.stop()

    app = FastAPI(title="CAPCOM Orbital Simulation", lifespan=lifespan)
    app.state.simulation = sim
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (settings from CAPCOM_CONFIG and the environment)
app = create_app()
