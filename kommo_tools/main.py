from contextlib import asynccontextmanager

import logfire
import sentry_sdk
from fastapi import FastAPI

from kommo_tools.core.config import settings
from kommo_tools.core.logging import get_logger
from kommo_tools.kommo.views import router as kommo_router

logger = get_logger()

# Initialize Logfire
if settings.logfire_token:
    logfire.configure(token=settings.logfire_token)

# Initialize Sentry
if settings.sentry_dsn:
    sentry_sdk.init(dsn=settings.sentry_dsn, traces_sample_rate=1.0)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan (startup and shutdown)"""
    logger.info('Starting Kommo tools application, API at %s', settings.kommo_api_url)
    yield
    logger.info('Shutting down Kommo tools application')


app = FastAPI(
    title='Kommo Tools',
    description='Kommo CRM custom field tools for AI agents',
    version='1.0.0',
    lifespan=lifespan,
)

# Instrument with Logfire
logfire.instrument_fastapi(app)


@app.get('/')
async def root():
    """Health check endpoint"""
    return {'status': 'ok', 'app': 'Kommo Tools', 'version': '1.0.0'}


@app.get('/health')
async def health():
    """Health check endpoint"""
    return {'status': 'healthy'}


app.include_router(kommo_router)
