"""Rate limiting middleware for FastAPI / Starlette applications.

Thin integration layer over the admission engine: it finds the route a
request matches, lets the AdmissionController evaluate it, and renders the
decision as headers and error responses. All counting and ban logic lives
in admission.app.services.

Usage:
    controller = AdmissionController(Policy(max=100, time_window="1 minute"))
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, controller=controller)

    @app.post("/login")
    @rate_limit(max=3, ban_threshold=5)
    async def login(): ...
"""

import math
from typing import Any, Callable, Dict, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.routing import BaseRoute, Match

from admission.app.core.config import settings
from admission.app.core.logging import get_log_context, get_logger
from admission.app.core.resolver import resolve_value
from admission.app.exceptions import StoreError
from admission.app.services.decision import Allow, Ban, Decision, Deny
from admission.app.services.policy import RoutePolicy
from admission.app.services.registry import AdmissionController, RateLimitScope

logger = get_logger(__name__)

ROUTE_POLICY_ATTR = "__rate_limit__"

STANDARD_HEADERS = {
    "limit": "x-ratelimit-limit",
    "remaining": "x-ratelimit-remaining",
    "reset": "x-ratelimit-reset",
    "retry_after": "retry-after",
}

DRAFT_SPEC_HEADERS = {
    "limit": "ratelimit-limit",
    "remaining": "ratelimit-remaining",
    "reset": "ratelimit-reset",
    "retry_after": "retry-after",
}

ErrorResponseBuilder = Callable[[Request, int, Decision], Dict[str, Any]]


def rate_limit(route_policy: Optional[RoutePolicy] = None, **fields: Any) -> Callable:
    """Attach a route-level policy to an endpoint.

    Either pass a RoutePolicy or its fields as keyword arguments.
    ``@rate_limit(enabled=False)`` opts the route out of rate limiting.
    """
    policy = route_policy or RoutePolicy(**fields)

    def decorator(endpoint: Callable) -> Callable:
        setattr(endpoint, ROUTE_POLICY_ATTR, policy)
        return endpoint

    return decorator


def default_key_generator(request: Request) -> str:
    """Use the first X-Forwarded-For hop, otherwise the client address."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def build_headers(decision: Decision, draft_spec: bool = False) -> Dict[str, str]:
    """Render rate limit headers for a decision.

    Reset is in whole seconds; retry-after carries the remaining window in
    milliseconds. Bans and uncounted requests get no headers.
    """
    names = DRAFT_SPEC_HEADERS if draft_spec else STANDARD_HEADERS

    if isinstance(decision, Allow):
        if not decision.counted:
            return {}
        return {
            names["limit"]: str(decision.max),
            names["remaining"]: str(decision.remaining),
            names["reset"]: str(math.ceil(decision.ttl / 1000)),
        }

    if isinstance(decision, Deny):
        return {
            names["limit"]: str(decision.max),
            names["remaining"]: "0",
            names["reset"]: str(math.ceil(decision.ttl / 1000)),
            names["retry_after"]: str(decision.ttl),
        }

    return {}


def default_error_response_builder(
    request: Request,
    status_code: int,
    decision: Decision,
) -> Dict[str, Any]:
    """Build the JSON body for a rejected request."""
    if isinstance(decision, Deny):
        return {
            "statusCode": status_code,
            "error": "Too Many Requests",
            "message": f"Rate limit exceeded, retry in {decision.after}",
        }
    return {
        "statusCode": status_code,
        "error": "Forbidden",
        "message": "Forbidden",
    }


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce rate limits on requests.

    Routes decorated with ``rate_limit`` get their own scope (merged policy,
    separate counters); every other route uses the global scope when the
    global policy applies globally.
    """

    def __init__(
        self,
        app,
        controller: Optional[AdmissionController] = None,
        key_generator: Optional[Callable[..., Any]] = None,
        add_headers: Optional[bool] = None,
        add_headers_on_exceeding: Optional[bool] = None,
        enable_draft_spec: Optional[bool] = None,
        error_response_builder: Optional[ErrorResponseBuilder] = None,
    ):
        super().__init__(app)
        self.controller = controller or AdmissionController()
        self.key_generator = key_generator or default_key_generator
        self.add_headers = settings.rate_limit_add_headers if add_headers is None else add_headers
        self.add_headers_on_exceeding = (
            settings.rate_limit_add_headers_on_exceeding
            if add_headers_on_exceeding is None
            else add_headers_on_exceeding
        )
        self.enable_draft_spec = (
            settings.rate_limit_enable_draft_spec if enable_draft_spec is None else enable_draft_spec
        )
        self.error_response_builder = error_response_builder or default_error_response_builder

    @staticmethod
    def _match_route(request: Request) -> Optional[BaseRoute]:
        app = request.scope.get("app")
        router = getattr(app, "router", None)
        for route in getattr(router, "routes", []):
            match, _ = route.matches(request.scope)
            if match == Match.FULL:
                return route
        return None

    def _scope_for(self, request: Request) -> Optional[RateLimitScope]:
        """Find (registering on first use) the scope for the matched route."""
        route = self._match_route(request)
        if route is None:
            return self.controller.scope_for(request.method, request.url.path)
        path = getattr(route, "path", request.url.path)
        route_policy = getattr(getattr(route, "endpoint", None), ROUTE_POLICY_ATTR, None)
        return self.controller.register_route(request.method, path, route_policy)

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request with rate limiting."""
        scope = self._scope_for(request)
        if scope is None:
            return await call_next(request)

        key = str(await resolve_value(scope.policy.key_generator or self.key_generator, request))

        try:
            decision = await scope.evaluate(request, key)
        except StoreError as e:
            logger.error(
                f"Rate limit store failed: {e.message}",
                extra=get_log_context(key=key, route=scope.name, path=request.url.path, method=request.method),
            )
            return JSONResponse(
                status_code=e.status_code,
                content={
                    "statusCode": e.status_code,
                    "error": "Internal Server Error",
                    "message": e.message,
                },
            )

        if isinstance(decision, Ban):
            return JSONResponse(
                status_code=403,
                content=self.error_response_builder(request, 403, decision),
            )

        if isinstance(decision, Deny):
            headers = build_headers(decision, self.enable_draft_spec) if self.add_headers_on_exceeding else {}
            return JSONResponse(
                status_code=429,
                content=self.error_response_builder(request, 429, decision),
                headers=headers or None,
            )

        response = await call_next(request)

        if self.add_headers:
            response.headers.update(build_headers(decision, self.enable_draft_spec))

        return response
