import asyncio
import time
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import AsyncIterator, Awaitable, Callable, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from imgserve.codec import Format
from imgserve.config import Settings
from imgserve.errors import ImgServeError
from imgserve.getimage.index import ImgServer, logger
from imgserve.transform import TransformRequest
from imgserve.typing import HealthReport, ImageId

images_router = APIRouter(prefix='/images', tags=['Image'])
api_router = APIRouter(prefix='/api', tags=['Health'])


def get_server(request: Request) -> ImgServer:
  return request.app.state.server


@images_router.get('/{identifier}')
async def get_image(
    request: Request,
    identifier: str,
    width: Optional[int] = Query(None, gt=0, description='Width of the image'),
    height: Optional[int] = Query(None, gt=0, description='Height of the image'),
    quality: Optional[int] = Query(None, ge=0, le=255, description='Quality of the image'),
    format: Optional[str] = Query(None, description='png, jpeg, webp or avif'),
) -> Response:
  """Get an image, optionally converted, re-encoded and resized."""
  try:
    fmt = None if format is None else Format.from_param(format)
  except ValueError as e:
    raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(e))

  settings: Settings = request.app.state.settings
  server = get_server(request)
  transform_request = TransformRequest(width=width, height=height, quality=quality, format=fmt)

  try:
    res = await asyncio.wait_for(
        server.get_image(ImageId(identifier), transform_request),
        timeout=settings.request_timeout)
  except TimeoutError:
    server.log_warning('request timed out', {'timeout': settings.request_timeout})
    raise HTTPException(status_code=HTTPStatus.REQUEST_TIMEOUT, detail='request timed out')

  return Response(content=res.body, headers=dict(res.headers()))


@api_router.get('/health')
async def health(request: Request) -> HealthReport:
  return {'status': 'ok', 'cache': await get_server(request).cache.ping()}


async def handle_imgserve_error(request: Request, exc: ImgServeError) -> JSONResponse:
  get_server(request).log_error(
      'request failed', {
          'reason': str(exc),
          'error': type(exc).__name__,
          'status': exc.status,
      })
  return JSONResponse(status_code=exc.status, content={'detail': str(exc)})


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
  return JSONResponse(
      status_code=HTTPStatus.BAD_REQUEST,
      content={'detail': [e['msg'] for e in exc.errors()]})


async def log_request(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
  start_ns = time.time_ns()
  response = await call_next(request)
  logger.info({
      'message': 'handled',
      'method': request.method,
      'path': request.url.path,
      'qstr': request.url.query,
      'status': response.status_code,
      'elapsed_us': (time.time_ns() - start_ns) // 1000,
  })
  return response


def create_app(
    settings: Optional[Settings] = None,
    server: Optional[ImgServer] = None,
) -> FastAPI:
  settings = Settings() if settings is None else settings

  @asynccontextmanager
  async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await app.state.server.close()

  app = FastAPI(title='imgserve', lifespan=lifespan)
  app.state.settings = settings
  app.state.server = ImgServer.from_settings(logger, settings) if server is None else server

  app.include_router(images_router)
  app.include_router(api_router)
  app.add_exception_handler(ImgServeError, handle_imgserve_error)  # type: ignore
  app.add_exception_handler(RequestValidationError, handle_validation_error)  # type: ignore
  app.middleware('http')(log_request)

  return app
