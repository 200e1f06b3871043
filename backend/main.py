import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import settings
from db.database import create_db_and_tables
from routers.beers import router as beers_router, stats_router
from routers.cart import router as cart_router
from routers.live import router as live_router
from routers.orders import router as orders_router, admin_router
from services.errors import StoreError
from services.reaper import reaper

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("brewery")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_db_and_tables()
    if settings.reaper_enabled:
        reaper.start()
    yield
    reaper.shutdown()


app = FastAPI(
    title="Brewery Shop API",
    description="Storefront API: catalog, time-limited cart reservations, orders and live stock",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(p) for p in e.get("loc", ()) if p != "body"), "reason": e.get("msg")}
        for e in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": details})


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


@app.get("/")
async def root():
    return {"info": "Brewery shop API"}


# Catalog
app.include_router(beers_router, prefix="/beers", tags=["beers"])
app.include_router(stats_router, prefix="/stats", tags=["stats"])

# Cart reservations
app.include_router(cart_router, prefix="/cart", tags=["cart"])

# Orders
app.include_router(orders_router, prefix="/orders", tags=["orders"])
app.include_router(admin_router, prefix="/admin", tags=["admin"])

# Live updates
app.include_router(live_router, tags=["live"])

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8080, reload=True)
