import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from dealership.core import config
from dealership.core.log_config import configure_logging
from dealership.database import Base, SessionLocal, engine, ensure_appointment_schema
from dealership.models import appointment, user, vehicle  # noqa: F401
from dealership.routes import appointment_routes, auth_routes, upload_routes, vehicle_routes
from dealership.routes.common import SERVER_ERROR_MESSAGE
from dealership.seed import seed_default_users

configure_logging()
config.validate_runtime_config()

app = FastAPI(title='Dealership API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


def format_validation_errors(errors) -> str:
    if not errors:
        return 'Datos inválidos'

    first = errors[0]
    location = [str(part) for part in first.get('loc', ()) if part not in ('body', 'query', 'path')]
    message = str(first.get('msg', 'Datos inválidos')).removeprefix('Value error, ')
    if location:
        return f"{'.'.join(location)}: {message}"
    return message


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else SERVER_ERROR_MESSAGE
    return JSONResponse(
        status_code=exc.status_code,
        content={'success': False, 'message': message},
        headers=getattr(exc, 'headers', None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={'success': False, 'message': format_validation_errors(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception('Unhandled error on %s %s', request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={'success': False, 'message': SERVER_ERROR_MESSAGE},
    )


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_appointment_schema()
        if config.SEED_DEFAULT_USERS:
            db = SessionLocal()
            try:
                seed_default_users(db)
            finally:
                db.close()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'success': True, 'status': 'Dealership API Running'}


@app.get('/api/health')
def health():
    return {'success': True, 'status': 'ok'}


app.include_router(auth_routes.router, prefix='/api')
app.include_router(vehicle_routes.router, prefix='/api')
app.include_router(appointment_routes.router, prefix='/api')
app.include_router(upload_routes.router, prefix='/api')

os.makedirs(config.UPLOAD_DIR, exist_ok=True)
app.mount('/uploads', StaticFiles(directory=config.UPLOAD_DIR), name='uploads')
