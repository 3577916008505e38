"""
User API Backend — Users Handlers
==================================

What:  Business handlers for the users resource.
How:   Each handler takes (Request, RequestContext) and returns a Response;
       the hosting adapters wrap them in the request pipeline. Failures are
       raised as AppError subclasses and rendered by the error-handling stage.

Endpoints:
    POST   /users        → 201 created user (+ welcome email, fire-and-forget)
    GET    /users        → 200 page of users (?limit=1..100&offset>=0)
    GET    /users/{id}   → 200 user
    PUT    /users/{id}   → 200 updated user
    DELETE /users/{id}   → 204
"""

import logging
import uuid

from app.database import session_scope
from app.exceptions import BadRequestError
from app.middleware.pipeline import Request, RequestContext, Response
from app.responses import created, no_content, success
from app.schemas.user import UserCreate, UserListParams, UserUpdate
from app.services.background import fire_and_forget
from app.services.email_service import email_service
from app.services.user_service import user_service
from app.validation import parse_body, parse_query

logger = logging.getLogger(__name__)


def _user_id(request: Request) -> uuid.UUID:
    raw = request.path_params.get("id")
    if not raw:
        raise BadRequestError("User ID is required")
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise BadRequestError("User ID must be a valid UUID")


async def create_user(request: Request, ctx: RequestContext) -> Response:
    data = parse_body(request, UserCreate)
    ctx.mark("validated")

    async with session_scope() as db:
        user = await user_service.create_user(db, data)
    ctx.mark("user_stored")

    # The response does not wait for, or depend on, the welcome email
    fire_and_forget(
        email_service.send_welcome_email(user.email, user.name),
        name=f"welcome-email:{user.id}",
    )
    return created(user)


async def get_user(request: Request, ctx: RequestContext) -> Response:
    user_id = _user_id(request)
    async with session_scope() as db:
        user = await user_service.get_user(db, user_id)
    ctx.mark("user_loaded")
    return success(user)


async def list_users(request: Request, ctx: RequestContext) -> Response:
    params = parse_query(request, UserListParams)
    async with session_scope() as db:
        page = await user_service.list_users(db, limit=params.limit, offset=params.offset)
    ctx.mark("users_listed")
    return success(page)


async def update_user(request: Request, ctx: RequestContext) -> Response:
    user_id = _user_id(request)
    data = parse_body(request, UserUpdate)
    async with session_scope() as db:
        user = await user_service.update_user(db, user_id, data)
    ctx.mark("user_updated")
    return success(user)


async def delete_user(request: Request, ctx: RequestContext) -> Response:
    user_id = _user_id(request)
    async with session_scope() as db:
        await user_service.delete_user(db, user_id)
    ctx.mark("user_deleted")
    return no_content()
