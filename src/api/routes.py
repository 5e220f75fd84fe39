import logging
from http import HTTPStatus
from typing import Any, List, Union

from aiohttp import web

from src.api.serializers import serialize_bug
from src.application.bug_service import BugService
from src.domain.exceptions import BugNotFoundException, ValidationException

logger = logging.getLogger(__name__)

CORS_ALLOW_METHODS = "GET,POST,PATCH,DELETE,OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type,Authorization"


def _error_response(status: HTTPStatus, message: Union[str, List[str]]) -> web.Response:
    return web.json_response(
        {'statusCode': status.value, 'error': status.phrase, 'message': message},
        status=status.value,
    )


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Maps application exceptions onto HTTP status codes."""
    try:
        return await handler(request)
    except ValidationException as e:
        return _error_response(HTTPStatus.BAD_REQUEST, e.errors)
    except BugNotFoundException as e:
        return _error_response(HTTPStatus.NOT_FOUND, str(e))
    except web.HTTPException:
        raise
    except Exception:
        logger.exception(f"{request.method} {request.path} failed.")
        return _error_response(HTTPStatus.INTERNAL_SERVER_ERROR, "Internal server error")


def cors_middleware(allow_origin: str):
    @web.middleware
    async def _cors(request: web.Request, handler) -> web.StreamResponse:
        if request.method == "OPTIONS" and "Access-Control-Request-Method" in request.headers:
            response = web.Response(status=HTTPStatus.NO_CONTENT.value)
            response.headers["Access-Control-Allow-Methods"] = CORS_ALLOW_METHODS
            response.headers["Access-Control-Allow-Headers"] = CORS_ALLOW_HEADERS
        else:
            response = await handler(request)
        response.headers["Access-Control-Allow-Origin"] = allow_origin
        return response

    return _cors


SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
}


@web.middleware
async def security_headers_middleware(request: web.Request, handler) -> web.StreamResponse:
    response = await handler(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


async def _read_json(request: web.Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        # JSONDecodeError and UnicodeDecodeError
        raise ValidationException("Request body must be valid UTF-8 encoded JSON.") from None


class BugHandler:
    """
    HTTP handlers for /bugs. Input validation happens in BugService before any write.
    """

    def __init__(self, bug_service: BugService):
        self.bug_service = bug_service

    async def create(self, request: web.Request) -> web.Response:
        bug = await self.bug_service.create(await _read_json(request))
        return web.json_response(serialize_bug(bug), status=HTTPStatus.CREATED.value)

    async def find_all(self, request: web.Request) -> web.Response:
        bugs = await self.bug_service.find_all()
        return web.json_response([serialize_bug(bug) for bug in bugs])

    async def find_one(self, request: web.Request) -> web.Response:
        bug = await self.bug_service.find_one(request.match_info['bug_id'])
        return web.json_response(serialize_bug(bug))

    async def update(self, request: web.Request) -> web.Response:
        bug = await self.bug_service.update(request.match_info['bug_id'], await _read_json(request))
        return web.json_response(serialize_bug(bug))

    async def remove(self, request: web.Request) -> web.Response:
        await self.bug_service.remove(request.match_info['bug_id'])
        return web.Response(status=HTTPStatus.NO_CONTENT.value)


def create_app(bug_service: BugService, api_prefix: str = "api", cors_origin: str = "*") -> web.Application:
    """Builds the aiohttp application with every /bugs route mounted under `api_prefix`."""
    app = web.Application(middlewares=[security_headers_middleware, cors_middleware(cors_origin), error_middleware])
    handler = BugHandler(bug_service)

    base = f"/{api_prefix}/bugs" if api_prefix else "/bugs"
    app.router.add_post(base, handler.create)
    app.router.add_get(base, handler.find_all)
    app.router.add_get(base + "/{bug_id}", handler.find_one)
    app.router.add_patch(base + "/{bug_id}", handler.update)
    app.router.add_delete(base + "/{bug_id}", handler.remove)
    return app
