from contextlib import asynccontextmanager

from fastapi import FastAPI

from db import close_pool
from log import configure_logging, get_logger
from routes import admin, api

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("quizboard starting")
    yield
    close_pool()


app = FastAPI(lifespan=lifespan, title="Quizboard Admin")
app.include_router(api.router)
app.include_router(admin.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app:app", host="0.0.0.0", port=8000, reload=False)
