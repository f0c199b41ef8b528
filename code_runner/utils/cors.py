"""
CORS middleware that fails closed.

Only configured origins receive CORS headers. A preflight from any other
origin is answered like a plain OPTIONS request (204, no CORS headers)
instead of Starlette's 400.
"""
from fastapi import Response, status
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger as l
from starlette.datastructures import Headers


class AllowListCORSMiddleware(CORSMiddleware):
    def preflight_response(self, request_headers: Headers) -> Response:
        origin = request_headers.get("origin", "")
        if not self.is_allowed_origin(origin):
            l.debug(f"CORS preflight from unknown origin '{origin}'")
            return Response(status_code=status.HTTP_204_NO_CONTENT)
        return super().preflight_response(request_headers)
