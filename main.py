import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

import config
import database
from auth import router as auth_router
from cart import router as cart_router
from catalog import equipment_types_router, service_types_router
from notifications import router as notifications_router
from orders import router as orders_router
from products import router as products_router
from reports import router as reports_router
from service_requests import router as service_requests_router

logger = logging.getLogger("techfarm")


def setup_logging() -> None:
    root = logging.getLogger()
    if root.handlers:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    root.addHandler(handler)
    root.setLevel(config.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        database.ensure_indexes(database.db)
    else:
        logger.warning("DATABASE_URL / DATABASE_NAME not set, running without a database")
    yield


setup_logging()

app = FastAPI(title="TechFarm API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router in (
    auth_router,
    products_router,
    cart_router,
    orders_router,
    service_requests_router,
    service_types_router,
    equipment_types_router,
    reports_router,
    notifications_router,
):
    app.include_router(router)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Something went wrong!"})


@app.get("/")
def root():
    return {"message": "Welcome to TechFarm API"}


COLLECTIONS = ("user", "product", "cart", "order", "service_request", "service_type", "equipment_type")


@app.get("/test")
def diagnostics():
    """Connection check for deploys: config flags plus a document count per collection."""
    response = {
        "backend": "running",
        "database_url": bool(config.DATABASE_URL),
        "database_name": bool(config.DATABASE_NAME),
        "database": "not configured",
        "collections": {},
    }
    if database.db is None:
        return response
    try:
        response["collections"] = {name: database.db[name].count_documents({}) for name in COLLECTIONS}
        response["database"] = "connected"
    except PyMongoError as e:
        logger.warning("Diagnostics could not reach the database: %s", e)
        response["database"] = f"error: {str(e)[:50]}"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
