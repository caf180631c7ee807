import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from partipay.core.config import settings
from partipay.core.locks import SessionLocks
from partipay.db.mongo import connect_to_mongo, close_mongo_connection
from partipay.api.v1.api import api_router
from partipay.realtime.broadcaster import SessionBroadcaster
from partipay.services.bank_service import BankService

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await connect_to_mongo()
    # Realtime state is per application instance
    app.state.broadcaster = SessionBroadcaster()
    app.state.session_locks = SessionLocks()
    app.state.bank_service = BankService()
    logger.info("%s started", settings.PROJECT_NAME)
    yield
    await app.state.broadcaster.close()
    await close_mongo_connection()


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.PROJECT_VERSION,
        description=settings.DESCRIPTION,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root():
        return {"message": "Welcome to PartiPay API"}

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "version": settings.PROJECT_VERSION}

    app.include_router(api_router, prefix=settings.API_V1_STR)
    return app


app = create_app()


def run():
    import uvicorn

    uvicorn.run("partipay.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)


if __name__ == "__main__":
    run()
