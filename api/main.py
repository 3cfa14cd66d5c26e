"""
FastAPI application for the one-shot notification endpoint.

The MediBox firmware calls POST /sendNotification when a medication event
happens and it wants the guardian told right away. The endpoint is a thin
adapter: it validates the request, checks the device can be reached by push,
builds a NotificationEvent and hands it to the same Dispatcher the change
watcher uses.

Run with:
    uvicorn api.main:create_app --factory --reload

Then visit http://localhost:8000/docs for interactive API documentation.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import pydantic
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from shared.config import Settings, get_settings
from shared.channels import PushSender, SMSSender, mask_token
from shared.errors import NotFoundError, NotifierError, ValidationError

from dispatch.classifier import request_event
from dispatch.orchestrator import Dispatcher

from api.models import ChannelResult, ErrorResponse, SendNotificationRequest, SendNotificationResponse

logger = logging.getLogger("api")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST",
    "Access-Control-Allow-Headers": "Content-Type",
}

MISSING_FIELDS_ERROR = "Missing required fields: deviceId, title, body, type"


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(),
        headers=CORS_HEADERS,
    )


# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logger.info("Starting MediBox notification API")
    yield
    logger.info("Shutting down")


def build_dispatcher(settings: Settings) -> Dispatcher:
    """Wire the production collaborators: Realtime Database, FCM and SMSAPI.LK."""
    from shared.firebase import FirebaseStore, init_firebase

    app = init_firebase(settings)
    store = FirebaseStore(app)
    return Dispatcher(
        store=store,
        push_sender=PushSender(settings, app=app),
        sms_sender=SMSSender(settings),
    )


def create_app(settings: Optional[Settings] = None, dispatcher: Optional[Dispatcher] = None) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        settings: Notifier settings (read from the environment if omitted)
        dispatcher: Pre-wired dispatcher; the production one is built if omitted
    """
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
        datefmt="%H:%M:%S",
    )

    app = FastAPI(
        title="MediBox Guardian Notifier",
        description="Push and SMS notifications to a patient's guardian for MediBox dose events.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.dispatcher = dispatcher or build_dispatcher(settings)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        return _error(400, MISSING_FIELDS_ERROR)

    @app.exception_handler(NotifierError)
    async def handle_notifier_error(request: Request, exc: NotifierError):
        if exc.status_code >= 500:
            logger.error(f"Error sending notification: {exc.message}")
        return _error(exc.status_code, exc.message)

    @app.exception_handler(pydantic.ValidationError)
    async def handle_malformed_record(request: Request, exc: pydantic.ValidationError):
        logger.error(f"Malformed record in backing store: {exc}")
        return _error(500, "Malformed device record in backing store")

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get("/health", tags=["Health"])
    def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "medibox-notifier"}

    # =========================================================================
    # One-shot notification
    # =========================================================================

    @app.options("/sendNotification", include_in_schema=False)
    def send_notification_preflight():
        """CORS preflight."""
        return Response(status_code=204, headers=CORS_HEADERS)

    @app.api_route(
        "/sendNotification",
        methods=["GET", "PUT", "PATCH", "DELETE"],
        include_in_schema=False,
    )
    def send_notification_wrong_method():
        return Response(
            "Method Not Allowed",
            status_code=405,
            media_type="text/plain",
            headers={**CORS_HEADERS, "Allow": "POST, OPTIONS"},
        )

    @app.post(
        "/sendNotification",
        response_model=SendNotificationResponse,
        responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
        tags=["Notifications"],
    )
    def send_notification(
        payload: SendNotificationRequest,
        response: Response,
        dispatcher: Dispatcher = Depends(get_dispatcher),
    ):
        """
        Notify the guardian of a device by push and SMS.

        Unknown device -> 404; device without a push token -> 400. Once
        dispatched the response is 200 even if a channel failed; `success`
        reports whether anything was delivered.
        """
        response.headers.update(CORS_HEADERS)

        device = dispatcher.store.get_device(payload.device_id)
        if device is None:
            raise NotFoundError(f"Device {payload.device_id} not found")
        token = device.guardian_push_token
        if not token:
            raise ValidationError("No push token found for this device")

        event = request_event(
            payload.device_id,
            payload.title,
            payload.body,
            payload.type,
            compartment=payload.compartment,
        )
        try:
            report = dispatcher.dispatch(event)
        except NotifierError:
            raise
        except Exception as e:
            logger.exception("Error sending notification")
            return _error(500, str(e))

        return SendNotificationResponse(
            success=report.delivered,
            message_id=report.message_id,
            sent_to=mask_token(token),
            results=[ChannelResult(**r.to_dict()) for r in report.results],
        )

    return app


def get_dispatcher(request: Request) -> Dispatcher:
    """The dispatcher wired into this app."""
    return request.app.state.dispatcher
