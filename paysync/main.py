import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from .routers import payments
from .db import init_db, close_db
from .config import settings
from .errors import register_error_handlers
from .services.razorpay import RazorpayClient

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="PaySync Subscription Payments Service")

# CORS - allow your app domain(s)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # change to your frontend domains in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)
app.include_router(payments.router)


@app.on_event("startup")
async def on_startup():
    # init db tables if not using migrations
    await init_db()
    app.state.gateway = RazorpayClient.from_settings(settings)
    logger.info("PaySync started (env=%s)", settings.env)


@app.on_event("shutdown")
async def on_shutdown():
    gateway = getattr(app.state, "gateway", None)
    if gateway is not None:
        await gateway.aclose()
    await close_db()


@app.get("/", response_class=PlainTextResponse)
async def root():
    return "PaySync API is up and running"


if __name__ == "__main__":
    uvicorn.run("paysync.main:app", host=settings.app_host, port=settings.app_port, reload=(settings.env != "production"))
