# DynDNSd
# (C) 2024-2025 Luflosi (dyndnsd@luflosi.de)
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, version 3.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <http://www.gnu.org/licenses/>.

from typing import Annotated, Optional
from fastapi import FastAPI, Query, Request, status
from fastapi.responses import PlainTextResponse
from fastapi.exceptions import RequestValidationError
import logging

from .config import Config
from .metrics import metrics_endpoint
from .settings import Settings
from .view import Orchestrator, UpdateRequest, UpdateStatus

logger = logging.getLogger(__name__)

STATUS_CODES = {
    UpdateStatus.SUCCESS: status.HTTP_200_OK,
    UpdateStatus.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    UpdateStatus.BAD_REQUEST: status.HTTP_400_BAD_REQUEST,
    UpdateStatus.UPDATE_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def create_app(config: Config, settings: Settings) -> FastAPI:
    app = FastAPI(root_path=settings.ROOT_PATH)
    orchestrator = Orchestrator(config, settings.UPDATE_TIMEOUT)
    app.state.orchestrator = orchestrator

    # Missing user/pass is a client error like any other malformed request.
    # The query string is not logged, it carries the password.
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        missing = [str(err['loc'][-1]) for err in exc.errors() if err.get('type') == 'missing']
        if missing:
            detail = f"Missing query parameter: {', '.join(missing)}"
        else:
            detail = "Invalid query parameters"
        logger.error(f"400 Validation Error - Request: {request.method} {request.url.path} - Error: {detail}")
        return PlainTextResponse(detail, status_code=status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled Exception - Request: {request.method} {request.url.path} - Type: {type(exc).__name__}")
        return PlainTextResponse("ERROR", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    @app.get('/robots.txt', response_class=PlainTextResponse)
    async def robots():
        return """User-agent: *\nDisallow: /"""

    app.add_api_route('/metrics', metrics_endpoint, methods=['GET'], include_in_schema=False)

    # DynDNS example HTTP query (FRITZ!Box style):
    # GET /update?user=<username>&pass=<pass>&ipv4=<ipaddr>&ipv6=<ip6addr>&ipv6lanprefix=<ip6lanprefix>
    @app.get('/update', response_class=PlainTextResponse)
    async def get_update(
        user: str,
        password: Annotated[str, Query(alias='pass')],
        ipv4: Optional[str] = None,
        ipv6: Optional[str] = None,
        ipv6lanprefix: Optional[str] = None,
        domain: Optional[str] = None,
        dualstack: Optional[str] = None,
    ) -> PlainTextResponse:
        outcome = await orchestrator.handle(UpdateRequest(
            user=user,
            password=password,
            ipv4=ipv4,
            ipv6=ipv6,
            ipv6lanprefix=ipv6lanprefix,
            domain=domain,
            dualstack=dualstack,
        ))
        return PlainTextResponse(outcome.detail, status_code=STATUS_CODES[outcome.status])

    return app
