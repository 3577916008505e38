"""
User API Backend — AWS Lambda Entry Points
===========================================

What:  One synchronous Lambda handler per business handler, for API Gateway
       proxy integrations (e.g. `app.lambda_handler.create_user`).
How:   Each invocation runs on a single event loop kept for the lifetime of the
       execution environment, so the async engine's pooled connections and the
       email circuit breaker survive between warm invocations. Background
       tasks (welcome emails) are drained before returning, since Lambda
       freezes the environment as soon as the handler returns.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from app.adapters import lambda_endpoint
from app.config import settings
from app.logger import setup_logging
from app.middleware import default_pipeline
from app.middleware.pipeline import Handler
from app.middleware.rate_limit import limiter_from_settings
from app.routes import email, health, users
from app.services import background

logger = logging.getLogger(__name__)

setup_logging()

_loop: Optional[asyncio.AbstractEventLoop] = None
_pipeline = default_pipeline(settings, limiter=limiter_from_settings(settings))


def _event_loop() -> asyncio.AbstractEventLoop:
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
        asyncio.set_event_loop(_loop)
    return _loop


def _lambda(handler: Handler) -> Callable[[Dict[str, Any], Any], Dict[str, Any]]:
    invoke = lambda_endpoint(handler, _pipeline)

    def entry(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
        loop = _event_loop()
        result = loop.run_until_complete(invoke(event, context))
        loop.run_until_complete(background.drain())
        return result

    entry.__name__ = handler.__name__
    return entry


health_check = _lambda(health.health_check)
create_user = _lambda(users.create_user)
list_users = _lambda(users.list_users)
get_user = _lambda(users.get_user)
update_user = _lambda(users.update_user)
delete_user = _lambda(users.delete_user)
send_email = _lambda(email.send_email)
