"""
User API Backend — Email Handler
=================================

POST /email/send: validate the message, deliver it through the relay, and
report how many recipients it went to.
"""

from app.middleware.pipeline import Request, RequestContext, Response
from app.responses import success
from app.schemas.email import EmailMessage, EmailSentResponse
from app.services.email_service import email_service
from app.validation import parse_body


async def send_email(request: Request, ctx: RequestContext) -> Response:
    message = parse_body(request, EmailMessage)
    ctx.mark("validated")
    await email_service.send(message)
    ctx.mark("email_sent")
    return success(EmailSentResponse(recipients=len(message.to)))
