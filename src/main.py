import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.api.routes.routes import router
from src.config.settings import get_settings
from src.infrastructure.db.models import Base
from src.infrastructure.db.session import engine, wait_for_database

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Playground Booking Engine")

app.include_router(router)
logger = logging.getLogger(__name__)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Malformed bodies are a 400 like every other validation failure.
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": {
                "error": "Invalid request body",
                "code": "VALIDATION_ERROR",
                "fields": [".".join(str(p) for p in err["loc"]) for err in exc.errors()],
            }
        },
    )


@app.on_event("startup")
def on_startup() -> None:
    wait_for_database(engine, get_settings())
    Base.metadata.create_all(bind=engine)
    logger.info("Playground booking engine started.")
