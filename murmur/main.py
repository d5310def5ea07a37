from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
import logging
from pythonjsonlogger import jsonlogger

from . import __version__, config
from .routes import router
from .core import init_metrics

# setup structured logging
logger = logging.getLogger('murmur')
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = jsonlogger.JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
logger.setLevel(config.LOG_LEVEL)

app = FastAPI(title="Murmur API", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=['*'],
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.include_router(router, prefix="/api")

@app.get('/healthz')
async def healthz():
    return {'status': 'ok'}

@app.middleware('http')
async def log_requests(request: Request, call_next):
    logger.info({'msg': 'request_start', 'method': request.method, 'path': request.url.path})
    response = await call_next(request)
    logger.info({'msg': 'request_end', 'path': request.url.path, 'status': response.status_code})
    return response

@app.exception_handler(SQLAlchemyError)
async def storage_error(request: Request, exc: SQLAlchemyError):
    logger.error({'msg': 'storage_error', 'path': request.url.path, 'error': str(exc)})
    return JSONResponse(status_code=500, content={'detail': 'Internal server error'})

@app.on_event("startup")
async def startup():
    if config.METRICS_ENABLED:
        init_metrics(config.METRICS_PORT)
