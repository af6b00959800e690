import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.availability import router as availability_router
from config import Settings
from exceptions import BusFinderError, InvalidInputError, RateLimitExceededError, ResolutionError
from services.container import AppServices, build_services

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[AppServices] = None,
    start_background: bool = True,
) -> FastAPI:
    settings = settings or (services.settings if services else Settings.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services(settings)
        if start_background:
            app.state.services.start()
        yield
        await app.state.services.close()

    app = FastAPI(title="Bus Availability API", lifespan=lifespan)
    if services is not None:
        app.state.services = services

    # Enable CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InvalidInputError)
    async def invalid_input_handler(request: Request, exc: InvalidInputError):
        return _error(400, str(exc))

    @app.exception_handler(ResolutionError)
    async def resolution_handler(request: Request, exc: ResolutionError):
        return _error(
            404,
            f'Could not find location "{exc.query}". Please provide coordinates as "lat,lng" '
            "or a valid location name.",
        )

    @app.exception_handler(RateLimitExceededError)
    async def rate_limit_handler(request: Request, exc: RateLimitExceededError):
        return _error(429, str(exc))

    @app.exception_handler(BusFinderError)
    async def internal_error_handler(request: Request, exc: BusFinderError):
        logger.error(f"Unhandled service error: {exc}")
        return _error(500, "Internal server error")

    @app.get("/")
    def read_root():
        return {"message": "Welcome to the Bus Availability API"}

    app.include_router(availability_router)
    return app


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


_settings = Settings.from_env()
_configure_logging(_settings)
app = create_app(_settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000)
