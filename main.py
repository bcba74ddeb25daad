import logfire

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from motor.motor_asyncio import AsyncIOMotorClient
from beanie import init_beanie

from config import Settings, load_settings
from models.users import User
from models.videos import Video
from utils.errors import register_exception_handlers
from utils.logger import configure_logging, instrument_libraries

from routers import users, videos

DOCUMENT_MODELS = [User, Video]


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    logfire.info("Starting VideoTube application...")

    client = AsyncIOMotorClient(settings.database_connection_string)  # * Connect to MongoDB

    await init_beanie(
        database=client[settings.database_name],
        document_models=DOCUMENT_MODELS,
    )
    logfire.info("Database initialized successfully")

    yield

    logfire.info("Shutting down VideoTube application...")
    client.close()
    logfire.info("Application shutdown complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application. Settings are loaded from the environment when not given,
    and a missing required value aborts startup.
    """
    settings = settings or load_settings()

    # Configure logfire BEFORE creating FastAPI app
    configure_logging(settings)
    instrument_libraries()

    app = FastAPI(
        title="VideoTube API",
        description="Backend for a video hosting platform: accounts, sessions, profiles and videos.",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["127.0.0.1"])
    app.add_middleware(GZipMiddleware, minimum_size=500)

    register_exception_handlers(app)

    app.include_router(users.router)
    app.include_router(videos.router)

    return app


app = create_app()
