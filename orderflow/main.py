# orderflow/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from orderflow.core.config import settings
from orderflow.core.errors import OrderflowError
from orderflow.deps import get_container
from orderflow.routers import notifications as notifications_router
from orderflow.routers import orders as orders_router
from orderflow.routers import otp as otp_router
from orderflow.routers import riders as riders_router
from orderflow.routers import verifications as verifications_router

logger = logging.getLogger("orderflow")


def configure_logging(level: str = settings.log_level) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    container = get_container()
    if container.settings.use_mongo:
        from orderflow.repos.mongo import ensure_indexes, get_client, get_db
        await ensure_indexes(get_db())
    await container.sweeper.start()
    logger.info("orderflow started (%s)", container.settings.environment)
    yield
    await container.sweeper.stop()
    container.otp_store.close()
    if container.settings.use_mongo:
        get_client().close()


app = FastAPI(lifespan=lifespan, title="Orderflow Coordinator")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(OrderflowError)
async def orderflow_error_handler(request: Request, exc: OrderflowError):
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


app.include_router(orders_router.router)          # /orders
app.include_router(verifications_router.router)   # /verifications
app.include_router(otp_router.router)             # /otp
app.include_router(riders_router.router)          # /riders
app.include_router(notifications_router.router)   # /notifications


@app.get("/health")
def health():
    return {"ok": True, "sweeper": get_container().sweeper.get_status()["running"]}
