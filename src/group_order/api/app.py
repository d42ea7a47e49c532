"""FastAPI application factory."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from group_order.api.models import (
    CreateSessionRequest,
    DeliveryFeeRequest,
    EditOrderRequest,
    PaymentInfoRequest,
    PaymentRequest,
    SubmitOrderRequest,
    items_payload,
)
from group_order.api.realtime import prune_idle_channels
from group_order.api.realtime import router as realtime_router
from group_order.app_logging import configure_logging
from group_order.config import parse_allowed_origins
from group_order.containers import AppContainer
from group_order.domain.errors import GroupOrderError, Unauthenticated
from group_order.services.serialization import (
    combined_payload,
    settled_session_payload,
)
from group_order.services.sessions import HistoryEntry, SessionService
from group_order.services.settlement import (
    combine_orders,
    format_combined_order,
    to_cents,
)


router = APIRouter(prefix="/api")


def _service(request: Request) -> SessionService:
    container: AppContainer = request.app.state.container
    return container.session_service


async def current_user(x_user_id: str | None = Header(default=None)) -> str:
    """Identity supplied by the upstream auth layer."""
    if not x_user_id or not x_user_id.strip():
        raise Unauthenticated()
    return x_user_id.strip()


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        prune_task = asyncio.create_task(prune_idle_channels(container.broadcaster))
        yield
        prune_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await prune_task
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    origins = parse_allowed_origins(container.settings.cors_allowed_origins)
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(GroupOrderError)
    async def handle_group_order_error(
        request: Request, exc: GroupOrderError
    ) -> JSONResponse:
        if exc.status_code >= 500 and not exc.retryable:
            logger.error(
                "Request failed: %s", exc.message, extra={"path": request.url.path}
            )
        return JSONResponse(
            status_code=exc.status_code, content={"error": exc.to_dict()}
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = f"{location}: {first.get('msg', 'invalid input')}".strip(": ")
        return JSONResponse(
            status_code=422,
            content={
                "error": {
                    "kind": "validation_error",
                    "message": message,
                    "retryable": False,
                }
            },
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    app.include_router(router)
    app.include_router(realtime_router)
    return app


@router.post("/sessions", status_code=201)
async def create_session(
    body: CreateSessionRequest,
    request: Request,
    user_id: str = Depends(current_user),
    x_user_name: str | None = Header(default=None),
) -> dict[str, object]:
    """Create a session hosted by the caller."""
    settled = await _service(request).create_session(
        host_id=user_id,
        payment_info=body.payment_info,
        delivery_fee=body.delivery_fee,
        deadline=body.deadline,
        restaurant_id=body.restaurant_id,
        host_name=body.host_name or x_user_name,
    )
    return settled_session_payload(settled)


@router.get("/sessions")
async def list_active_sessions(request: Request, limit: int = 20) -> dict[str, object]:
    """Return sessions currently accepting orders."""
    sessions = await _service(request).list_active_sessions(limit)
    return {"sessions": [settled_session_payload(settled) for settled in sessions]}


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, request: Request) -> dict[str, object]:
    """Return a session with freshly settled costs."""
    return settled_session_payload(await _service(request).get_session(session_id))


@router.get("/sessions/{session_id}/combined")
async def get_combined_order(session_id: str, request: Request) -> dict[str, object]:
    """Return identical items aggregated across participants."""
    settled = await _service(request).get_session(session_id)
    lines = combine_orders(settled.session)
    return {"items": combined_payload(lines), "text": format_combined_order(lines)}


@router.post("/sessions/{session_id}/orders")
async def submit_order(
    session_id: str,
    body: SubmitOrderRequest,
    request: Request,
    user_id: str = Depends(current_user),
    x_user_name: str | None = Header(default=None),
) -> dict[str, object]:
    """Create or replace the caller's order."""
    settled = await _service(request).submit_order(
        session_id,
        participant_id=user_id,
        items=items_payload(body.items),
        participant_name=body.participant_name or x_user_name,
    )
    return settled_session_payload(settled)


@router.put("/sessions/{session_id}/orders/{participant_id}")
async def edit_order(
    session_id: str,
    participant_id: str,
    body: EditOrderRequest,
    request: Request,
    user_id: str = Depends(current_user),
) -> dict[str, object]:
    """Host replaces a participant's order."""
    settled = await _service(request).edit_order(
        session_id,
        actor_id=user_id,
        participant_id=participant_id,
        items=items_payload(body.items),
    )
    return settled_session_payload(settled)


@router.delete("/sessions/{session_id}/orders/{participant_id}")
async def delete_order(
    session_id: str,
    participant_id: str,
    request: Request,
    user_id: str = Depends(current_user),
) -> dict[str, object]:
    """Host removes a participant's order."""
    settled = await _service(request).delete_order(
        session_id, actor_id=user_id, participant_id=participant_id
    )
    return settled_session_payload(settled)


@router.patch("/sessions/{session_id}/orders/{participant_id}/payment")
async def update_payment(
    session_id: str,
    participant_id: str,
    body: PaymentRequest,
    request: Request,
    user_id: str = Depends(current_user),
) -> dict[str, object]:
    """Mark a participant's payment as sent or pending."""
    settled = await _service(request).update_payment(
        session_id,
        participant_id=participant_id,
        sent=body.payment_sent,
        actor_id=user_id,
    )
    return settled_session_payload(settled)


@router.patch("/sessions/{session_id}/delivery-fee")
async def update_delivery_fee(
    session_id: str,
    body: DeliveryFeeRequest,
    request: Request,
    user_id: str = Depends(current_user),
) -> dict[str, object]:
    """Host changes the delivery fee."""
    settled = await _service(request).update_delivery_fee(
        session_id, actor_id=user_id, fee=body.delivery_fee
    )
    return settled_session_payload(settled)


@router.patch("/sessions/{session_id}/payment-info")
async def update_payment_info(
    session_id: str,
    body: PaymentInfoRequest,
    request: Request,
    user_id: str = Depends(current_user),
) -> dict[str, object]:
    """Host changes the payout destination."""
    settled = await _service(request).update_payment_info(
        session_id, actor_id=user_id, payment_info=body.payment_info
    )
    return settled_session_payload(settled)


@router.post("/sessions/{session_id}/close")
@router.delete("/sessions/{session_id}")
async def close_session(
    session_id: str, request: Request, user_id: str = Depends(current_user)
) -> dict[str, object]:
    """Host closes the session."""
    settled = await _service(request).close_session(session_id, actor_id=user_id)
    return settled_session_payload(settled)


@router.get("/history")
async def history(
    request: Request, user_id: str = Depends(current_user)
) -> dict[str, object]:
    """Return sessions the caller hosted or ordered in."""
    container: AppContainer = request.app.state.container
    entries = await container.session_service.list_history(
        user_id, limit=container.settings.history_limit
    )
    return {"history": [_history_payload(entry) for entry in entries]}


def _history_payload(entry: HistoryEntry) -> dict[str, object]:
    own_total = entry.own_cost.total if entry.own_cost else None
    return {
        "session": settled_session_payload(entry.settled),
        "hosted": entry.hosted,
        "ownTotal": float(to_cents(own_total)) if own_total is not None else None,
        "paymentSent": entry.own_cost.payment_sent if entry.own_cost else None,
    }

