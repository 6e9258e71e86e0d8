"""Per-request id, access log line and latency metrics."""

from __future__ import annotations

import time
from uuid import uuid4

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from nexus.obs import logging as obs_logging
from nexus.obs import metrics

REQUEST_ID_HEADER = "X-Request-Id"


def _route_label(request: Request) -> str:
	# Templated path, e.g. /courses/{entity_id}
	route = request.scope.get("route")
	return getattr(route, "path", None) or request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
	def __init__(self, app, *, enabled: bool = True) -> None:
		super().__init__(app)
		self._enabled = enabled
		self._access_log = obs_logging.get_logger("nexus.http")

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
		request.state.request_id = request_id
		if not self._enabled:
			response = await call_next(request)
			response.headers.setdefault(REQUEST_ID_HEADER, request_id)
			return response

		token = obs_logging.bind_context(
			request_id=request_id,
			route=request.url.path,
			principal_id=request.headers.get("X-User-Id"),
			client_ip=request.client.host if request.client else None,
		)
		started = time.perf_counter()
		status_code = 500
		try:
			response = await call_next(request)
			status_code = response.status_code
		except Exception:
			self._access_log.exception("http_request_failed", extra={"method": request.method})
			raise
		finally:
			elapsed = time.perf_counter() - started
			route = _route_label(request)
			metrics.observe_request(route, request.method, status_code, elapsed)
			self._access_log.info(
				"http_request",
				extra={
					"method": request.method,
					"status": status_code,
					"latency_ms": round(elapsed * 1000, 3),
				},
			)
			obs_logging.reset_context(token)
		response.headers.setdefault(REQUEST_ID_HEADER, request_id)
		return response


def install(app: FastAPI, *, enabled: bool = True) -> None:
	app.add_middleware(ObservabilityMiddleware, enabled=enabled)
