import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from availability_engine.core import config
from availability_engine.core.log import setup_logging
from availability_engine.database import ensure_schema
from availability_engine.routes import availability_routes

logger = logging.getLogger(__name__)

setup_logging()
config.validate_runtime_config()

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        ensure_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL.')


@app.get('/')
def root():
    return {'status': 'Availability Engine Running'}


app.include_router(availability_routes.router, prefix='/availability')
