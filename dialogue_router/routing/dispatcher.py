"""
Action dispatcher: resolved actions -> order workflow operations.

Actions are registered by name in a module-level registry, so the router
only ever emits a string and a payload. Each action performs its
commerce calls, builds the reply, and returns the ``StateChange`` that
follows it. The engine applies that change once the turn is over.

Commerce failures never escape: they become an explanatory reply with
no state change.

Usage:
    dispatcher = ActionDispatcher(commerce)
    result = await dispatcher.dispatch("show_catalog", {}, session)
    # ActionResult(reply="🛍️ *Catálogo* ...", state_change=None)
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from dialogue_router.config import AppConfig, settings
from dialogue_router.conversation.state_machine import Session, SessionState, StateChange, TransitionTrigger
from dialogue_router.logging_context import get_turn_logger
from dialogue_router.prompts import reply_templates as replies
from dialogue_router.schemas.product_schema import OrderLine
from dialogue_router.services.commerce import (
    ORDER_CONFIRMED,
    ORDER_PENDING,
    CommerceClient,
    order_total,
)

logger = get_turn_logger(__name__)

T = TransitionTrigger


@dataclass
class ActionResult:
    """Reply text plus the state change that follows a dispatched action."""
    reply: str
    state_change: Optional[StateChange] = None


@dataclass
class ActionContext:
    """What an action handler receives."""
    data: dict[str, Any]
    session: Session
    commerce: CommerceClient
    config: AppConfig


ActionHandler = Callable[[ActionContext], Awaitable[ActionResult]]

_ACTION_REGISTRY: dict[str, ActionHandler] = {}


def register_action(name: str) -> Callable[[ActionHandler], ActionHandler]:
    """Register an action handler under ``name``."""

    def decorator(handler: ActionHandler) -> ActionHandler:
        _ACTION_REGISTRY[name] = handler
        logger.debug("Action registered: %s", name)
        return handler

    return decorator


def get_registered_actions() -> list[str]:
    """Return the names of all registered actions."""
    return list(_ACTION_REGISTRY.keys())


class ActionDispatcher:
    """Runs registered actions against the commerce collaborator."""

    def __init__(self, commerce: CommerceClient, config: Optional[AppConfig] = None):
        self.commerce = commerce
        self.config = config or settings

    async def dispatch(
        self, action: str, data: Optional[dict[str, Any]], session: Session
    ) -> ActionResult:
        handler = _ACTION_REGISTRY.get(action)
        if handler is None:
            logger.warning("Unknown action '%s', answering with help", action)
            return ActionResult(replies.HELP_TEXT)

        ctx = ActionContext(data=dict(data or {}), session=session, commerce=self.commerce, config=self.config)
        logger.info("Dispatching %s", action)
        try:
            return await handler(ctx)
        except Exception:
            logger.exception("Action '%s' failed", action)
            return ActionResult(replies.operation_failed(
                "No pudimos completar la operación. Intenta de nuevo en un momento."
            ))


# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #

def _identified(session: Session) -> bool:
    return session.authenticated or session.has_guest_data


def _lines(data: dict[str, Any]) -> list[OrderLine]:
    return [OrderLine(**p) for p in data.get("products", [])]


async def _latest_order(ctx: ActionContext, status: Optional[str] = None) -> Optional[dict]:
    orders = await ctx.commerce.list_orders(ctx.session.key)
    if status:
        orders = [o for o in orders if o["status"] == status]
    return orders[-1] if orders else None


def _only_from_idle(session: Session, trigger: TransitionTrigger) -> Optional[StateChange]:
    # triggers that open a flow are only valid from IDLE
    if session.state == SessionState.IDLE:
        return StateChange(trigger)
    return None


# ------------------------------------------------------------------ #
# Order building
# ------------------------------------------------------------------ #

@register_action("create_pending_order")
async def create_pending_order(ctx: ActionContext) -> ActionResult:
    lines = _lines(ctx.data)
    if not lines:
        return ActionResult(replies.ASK_WHICH_PRODUCT)
    if ctx.session.pending_order_id is not None:
        return await add_products_to_order(ctx)

    client_id = ctx.session.context.get("_client_id") if ctx.session.authenticated else None
    result = await ctx.commerce.create_order(ctx.session.key, lines, client_id=client_id)
    if not result.success:
        return ActionResult(replies.product_not_found(", ".join(l.name for l in lines)))

    order = result.data["order"]
    reply = replies.order_created(order, result.data["missing"])
    if not _identified(ctx.session):
        reply += "\n\n👤 Para confirmarlo escribe *HOLA* si eres cliente o *PEDIDO* para comprar sin registro."
    return ActionResult(reply, StateChange(context={"pedido_id": order["id"]}))


@register_action("add_products_to_order")
async def add_products_to_order(ctx: ActionContext) -> ActionResult:
    order_id = ctx.session.pending_order_id
    if order_id is None:
        return await create_pending_order(ctx)

    missing, problems = [], []
    order = None
    for line in _lines(ctx.data):
        hits = await ctx.commerce.search_products(line.name, limit=1)
        if not hits:
            missing.append(line.name)
            continue
        result = await ctx.commerce.add_item(order_id, hits[0].id, line.quantity)
        if result.success:
            order = result.data
        else:
            problems.append(result.message)

    if order is None:
        message = problems[0] if problems else replies.product_not_found(", ".join(missing))
        return ActionResult(message)
    reply = replies.items_added(order)
    notes = problems + ([f"No encontré: {', '.join(missing)}"] if missing else [])
    if notes:
        reply += "\n\n⚠️ " + " ".join(notes)
    return ActionResult(reply)


@register_action("remove_product")
async def remove_product(ctx: ActionContext) -> ActionResult:
    order_id = ctx.session.pending_order_id
    if order_id is None:
        return ActionResult(replies.NO_ACTIVE_ORDER)
    result = await ctx.commerce.remove_item(order_id, ctx.data.get("product", ""))
    if not result.success:
        return ActionResult(replies.operation_failed(result.message))
    return ActionResult(f"🗑️ Producto quitado.\n\n{replies.format_order(result.data)}")


@register_action("update_product_quantity")
async def update_product_quantity(ctx: ActionContext) -> ActionResult:
    order_id = ctx.session.pending_order_id
    if order_id is None:
        return ActionResult(replies.NO_ACTIVE_ORDER)
    result = await ctx.commerce.update_item_quantity(
        order_id, ctx.data.get("product", ""), int(ctx.data.get("quantity", 1))
    )
    if not result.success:
        return ActionResult(replies.operation_failed(result.message))
    return ActionResult(f"✏️ Cantidad actualizada.\n\n{replies.format_order(result.data)}")


@register_action("list_order_items")
async def list_order_items(ctx: ActionContext) -> ActionResult:
    order_id = ctx.session.pending_order_id
    order = await ctx.commerce.get_order(order_id) if order_id is not None else None
    if order is None:
        return ActionResult(replies.NO_ACTIVE_ORDER)
    return ActionResult(replies.format_order(order))


# ------------------------------------------------------------------ #
# Payment and cancellation
# ------------------------------------------------------------------ #

@register_action("confirm_order")
async def confirm_order(ctx: ActionContext) -> ActionResult:
    session = ctx.session
    order_id = ctx.data.get("order_id") or session.pending_order_id
    if order_id is None:
        change = None
        if session.state == SessionState.AWAITING_PAYMENT_METHOD:
            change = StateChange(T.NO_ACTIVE_ORDER)
        return ActionResult(replies.NO_ACTIVE_ORDER, change)

    if not _identified(session):
        return ActionResult(replies.ASK_CLIENT, _only_from_idle(session, T.CLIENT_CHECK))

    method = ctx.data.get("payment_method")
    if not method:
        return ActionResult(replies.PAYMENT_METHODS_LIST, _only_from_idle(session, T.PAYMENT_REQUESTED))

    result = await ctx.commerce.confirm_order(order_id, method)
    if not result.success:
        return ActionResult(replies.operation_failed(result.message))

    order = result.data
    reply = replies.order_confirmed(order)
    biz = ctx.config.business
    if method == "YAPE":
        reply += "\n\n" + replies.wallet_instructions("Yape", biz.yape_number, biz.wallet_holder, order_total(order))
    elif method == "PLIN":
        reply += "\n\n" + replies.wallet_instructions("Plin", biz.plin_number, biz.wallet_holder, order_total(order))
    return ActionResult(reply, StateChange(
        T.PAYMENT_SELECTED, context={"pedido_id": None, "payment_method": method}
    ))


@register_action("cancel_order")
async def cancel_order(ctx: ActionContext) -> ActionResult:
    """Pending orders are cancelled at once, confirmed ones ask first."""
    session = ctx.session
    order_id = ctx.data.get("order_id") or session.pending_order_id
    order = await ctx.commerce.get_order(order_id) if order_id is not None else None
    if order is None:
        order = await _latest_order(ctx, ORDER_CONFIRMED)
    if order is None:
        return ActionResult(replies.NOTHING_TO_CANCEL)

    if order["status"] == ORDER_CONFIRMED:
        return ActionResult(
            replies.confirm_cancel_prompt(order),
            StateChange(T.CANCEL_REQUESTED, context={"_pedido_a_cancelar": order["id"]}),
        )

    result = await ctx.commerce.cancel_order(order["id"])
    if not result.success:
        return ActionResult(replies.operation_failed(result.message))
    return ActionResult(replies.order_cancelled(order["id"]), StateChange(context={"pedido_id": None}))


@register_action("cancel_confirmed_order")
async def cancel_confirmed_order(ctx: ActionContext) -> ActionResult:
    order_id = ctx.data.get("order_id") or ctx.session.context.get("_pedido_a_cancelar")
    done = StateChange(T.CANCEL_RESOLVED, clear=("_pedido_a_cancelar",))
    if order_id is None:
        return ActionResult(replies.NOTHING_TO_CANCEL, done)
    result = await ctx.commerce.cancel_order(order_id)
    if not result.success:
        return ActionResult(replies.operation_failed(result.message), done)
    if ctx.session.pending_order_id == order_id:
        done.context["pedido_id"] = None
    return ActionResult(replies.order_cancelled(order_id), done)


async def _wallet(ctx: ActionContext, wallet: str, number: str) -> ActionResult:
    order_id = ctx.session.pending_order_id
    order = await ctx.commerce.get_order(order_id) if order_id is not None else None
    if order is None:
        order = await _latest_order(ctx, ORDER_CONFIRMED)
    if order is None:
        return ActionResult(replies.NO_ACTIVE_ORDER)
    biz = ctx.config.business
    return ActionResult(replies.wallet_instructions(wallet, number, biz.wallet_holder, order_total(order)))


@register_action("show_yape_payment")
async def show_yape_payment(ctx: ActionContext) -> ActionResult:
    return await _wallet(ctx, "Yape", ctx.config.business.yape_number)


@register_action("show_plin_payment")
async def show_plin_payment(ctx: ActionContext) -> ActionResult:
    return await _wallet(ctx, "Plin", ctx.config.business.plin_number)


# ------------------------------------------------------------------ #
# Status and account
# ------------------------------------------------------------------ #

@register_action("check_status")
@register_action("view_order")
async def check_status(ctx: ActionContext) -> ActionResult:
    order_id = ctx.session.pending_order_id
    order = await ctx.commerce.get_order(order_id) if order_id is not None else None
    if order is None:
        order = await _latest_order(ctx)
    if order is None:
        return ActionResult(replies.NO_ORDERS)
    reply = replies.format_order(order)
    if order["status"] == ORDER_PENDING:
        reply += "\n\nEscribe *CONFIRMO* para elegir el método de pago."
    return ActionResult(reply)


@register_action("view_order_history")
async def view_order_history(ctx: ActionContext) -> ActionResult:
    orders = await ctx.commerce.list_orders(ctx.session.key)
    if not orders:
        return ActionResult(replies.NO_ORDERS)
    return ActionResult(replies.order_history(orders))


@register_action("view_account_status")
async def view_account_status(ctx: ActionContext) -> ActionResult:
    if not ctx.session.authenticated:
        return ActionResult(replies.LOGIN_REQUIRED)
    phone = ctx.session.context.get("_client_phone") or ctx.session.key
    client = await ctx.commerce.find_client_by_phone(phone)
    if client is None:
        return ActionResult(replies.LOGIN_REQUIRED)
    orders = await ctx.commerce.list_orders(ctx.session.key)
    return ActionResult(replies.account_status(client, orders))


_UPDATE_TRIGGERS = {
    "telefono": T.UPDATE_PHONE_REQUESTED,
    "direccion": T.UPDATE_ADDRESS_REQUESTED,
    "email": T.UPDATE_EMAIL_REQUESTED,
}

_FIELD_LABELS = {"telefono": "teléfono", "direccion": "dirección", "email": "correo"}


@register_action("modify_profile")
async def modify_profile(ctx: ActionContext) -> ActionResult:
    if not ctx.session.authenticated:
        return ActionResult(replies.LOGIN_REQUIRED)
    field_name = ctx.data.get("field")
    if field_name not in _UPDATE_TRIGGERS:
        return ActionResult(replies.PROFILE_MENU)
    if ctx.session.state != SessionState.IDLE:
        return ActionResult(replies.PROFILE_MENU)
    return ActionResult(
        replies.ASK_UPDATE_FIELD[field_name],
        StateChange(_UPDATE_TRIGGERS[field_name], context={"_updating_field": field_name}),
    )


@register_action("update_profile_field")
async def update_profile_field(ctx: ActionContext) -> ActionResult:
    field_name = ctx.data.get("field", "")
    done = StateChange(T.PROFILE_UPDATED, clear=("_updating_field",))
    client_id = ctx.session.context.get("_client_id")
    if client_id is None or not ctx.session.authenticated:
        return ActionResult(replies.LOGIN_REQUIRED, done)
    result = await ctx.commerce.update_client(client_id, field_name, ctx.data.get("value", ""))
    if not result.success:
        return ActionResult(replies.operation_failed(result.message), done)
    if field_name == "telefono":
        done.context["_client_phone"] = ctx.data.get("value")
    return ActionResult(replies.profile_updated(_FIELD_LABELS.get(field_name, field_name)), done)


# ------------------------------------------------------------------ #
# Catalog and help
# ------------------------------------------------------------------ #

@register_action("show_catalog")
async def show_catalog(ctx: ActionContext) -> ActionResult:
    category = ctx.data.get("category")
    if category:
        products = await ctx.commerce.search_products(category, limit=10)
        title = f"Catálogo: {category}"
    else:
        products = await ctx.commerce.list_catalog()
        title = "Catálogo"
    if not products:
        return ActionResult(replies.EMPTY_CATALOG)
    return ActionResult(replies.catalog_listing(products, title))


@register_action("show_help")
async def show_help(ctx: ActionContext) -> ActionResult:
    return ActionResult(replies.HELP_TEXT)
