"""Customer-facing reply text and builders."""

from typing import Optional

from dialogue_router.config import settings
from dialogue_router.schemas.product_schema import ProductCandidate

_biz = settings.business
_val = settings.validation

LAST_RESORT_REPLY = "Error. Escribe *AYUDA* para continuar."

ASK_CLIENT = (
    f"👋 ¡Hola! Bienvenido a *{_biz.name}*.\n\n"
    "¿Eres cliente registrado?\n\n"
    "Responde *SÍ* o *NO*."
)
CLIENT_CONFIRMATION_REPROMPT = (
    "🤔 No entendí tu respuesta.\n\n"
    "¿Eres cliente registrado? Responde *SÍ* o *NO*."
)
NOT_CLIENT_MENU = (
    "👍 ¡No hay problema!\n\n"
    "Puedes:\n"
    "• Escribir *REGISTRAR* para crear tu cuenta\n"
    "• Escribir *PEDIDO* para comprar sin registrarte\n"
    "• Escribir *CATALOGO* para ver nuestros productos"
)
ASK_PHONE = (
    "📱 No encontré una cuenta con este número.\n\n"
    f"Por favor, escribe el *número de teléfono* ({_val.phone_digits} dígitos) "
    "con el que te registraste:"
)
ASK_PHONE_FOR_FLOW = (
    f"📱 Para continuar, escribe tu *número de teléfono* ({_val.phone_digits} dígitos):"
)
PHONE_INVALID = (
    f"❌ El número debe tener {_val.phone_digits} dígitos (ejemplo: 987654321).\n\n"
    "Escribe tu número o *CANCELAR* para volver."
)
PASSWORD_REPROMPT = "🔐 Por favor, escribe tu *contraseña* para continuar."
PASSWORD_CANCELLED = "❌ Verificación cancelada.\n\n¿En qué más puedo ayudarte?"
WRONG_PASSWORD = (
    "❌ Contraseña incorrecta.\n\n"
    "Intenta de nuevo, escribe *OLVIDE MI CONTRASEÑA* para recibir un código "
    "o *CANCELAR* para volver."
)
SMS_EXPIRED = "⌛ El código expiró. Escribe *OLVIDE MI CONTRASEÑA* si necesitas uno nuevo."
SMS_EXCEEDED = (
    "🚫 Has excedido el número de intentos.\n\n"
    "Escribe *OLVIDE MI CONTRASEÑA* para solicitar un nuevo código."
)
UNIVERSAL_CANCELLED = (
    "✅ Entendido, operación cancelada.\n\n"
    "¿En qué más puedo ayudarte? Escribe *AYUDA* para ver las opciones."
)
ASK_REG_NAME = "📝 *Registro*\n\nPor favor, escribe tu *nombre completo*:"
ASK_REG_DNI = f"🪪 Ahora escribe tu *DNI* ({_val.dni_length} dígitos):"
ASK_REG_EMAIL = "📧 Escribe tu *correo electrónico*:"
ASK_REG_PASSWORD = (
    f"🔐 Crea una *contraseña* (mínimo {_val.min_password_length} caracteres):"
)
ASK_TEMP_NAME = (
    "🛒 *Pedido sin registro*\n\nPara tu pedido necesito algunos datos.\n\n"
    "Escribe tu *nombre completo*:"
)
ASK_TEMP_DNI = f"🪪 Escribe tu *DNI* ({_val.dni_length} dígitos):"
PAYMENT_METHODS_LIST = (
    "💳 *Elige tu método de pago:*\n\n"
    "• *TRANSFERENCIA*\n"
    "• *EFECTIVO*\n"
    "• *YAPE*\n"
    "• *PLIN*"
)
NO_ACTIVE_ORDER = "⚠️ No se encontró un pedido activo.\n\nEscribe el producto que deseas pedir."
NOTHING_TO_CANCEL = "ℹ️ No tienes ningún pedido activo para cancelar."
CANCEL_CONFIRM_REPROMPT = (
    "⚠️ *Por favor, confirma tu respuesta*\n\n"
    "Escribe *SI* o *CONFIRMO* para cancelar el pedido.\n"
    "O escribe *NO* para volver."
)
ORDER_KEPT = "✅ Operación cancelada.\n\nTu pedido sigue activo. ¿En qué más puedo ayudarte?"
LOGIN_REQUIRED = (
    "🔐 Para esta opción necesitas iniciar sesión.\n\n"
    "Escribe *HOLA* para identificarte."
)

HELP_TEXT = (
    "🤖 *¿Qué puedo hacer por ti?*\n\n"
    "• *CATALOGO*: ver productos\n"
    "• Pregúntame precios: _¿cuánto cuesta una laptop?_\n"
    "• Haz tu pedido: _quiero 2 mouse logitech_\n"
    "• *ESTADO*: ver tu pedido actual\n"
    "• *MIS PEDIDOS*: ver tu historial\n"
    "• *REGISTRAR*: crear tu cuenta\n"
    "• *CANCELAR*: salir de cualquier paso"
)

CANNED_GREETING = "¡Hola! 😊 ¿En qué puedo ayudarte hoy?"
CANNED_HOW_ARE_YOU = "¡Muy bien, gracias por preguntar! 😊 ¿Buscas algún producto en especial?"
CANNED_THANKS = "¡Con gusto! 😊 Si necesitas algo más, aquí estoy."
CANNED_GENERIC = (
    "Disculpa, no entendí bien tu mensaje. 🤔\n\n"
    "Puedes preguntarme por un producto o escribir *AYUDA* para ver las opciones."
)


def ask_password(name: Optional[str]) -> str:
    greeting = f"👋 ¡Hola, *{name}*!" if name else "👋 ¡Hola!"
    return f"{greeting}\n\n🔐 Por favor, escribe tu *contraseña* para continuar."


def client_not_found_offer(phone: str) -> str:
    return (
        f"📱 No encontré una cuenta con el número *{phone}*.\n\n"
        "Puedes:\n"
        "• Escribir *REGISTRAR* para crear tu cuenta\n"
        "• Escribir *PEDIDO* para comprar sin registrarte"
    )


def welcome_back(name: Optional[str]) -> str:
    who = f", *{name}*" if name else ""
    return (
        f"✅ ¡Bienvenido{who}!\n\n"
        "¿Qué deseas hacer hoy? Escribe el producto que buscas, *CATALOGO* o *MIS PEDIDOS*."
    )


def sms_code_sent(phone: str, minutes: int) -> str:
    return (
        f"📲 Te enviamos un código de 6 dígitos al número *{phone}*.\n\n"
        f"Escríbelo aquí. El código vence en {minutes} minutos."
    )


def sms_attempts_left(remaining: int) -> str:
    plural = "intento" if remaining == 1 else "intentos"
    return f"❌ Código incorrecto. Te quedan {remaining} {plural}."


def sms_bad_format(remaining: int) -> str:
    return f"❌ El código debe tener 6 dígitos. Te quedan {remaining} intentos."


def guest_ready(name: str) -> str:
    return (
        f"✅ ¡Gracias, *{name}*!\n\n"
        "Ahora dime qué producto deseas pedir (ejemplo: _quiero 2 mouse logitech_)."
    )


def registration_done(name: str) -> str:
    return (
        f"🎉 ¡Registro exitoso, *{name}*!\n\n"
        "Ya puedes hacer tus pedidos. Escribe el producto que buscas o *CATALOGO*."
    )


def registration_failed(reason: str) -> str:
    return f"❌ No se pudo completar el registro: {reason}\n\nEscribe *REGISTRAR* para intentarlo de nuevo."


def format_price(value: float) -> str:
    return f"{_biz.currency} {value:.2f}"


def product_reply(product: ProductCandidate) -> str:
    stock_line = (
        f"✅ Disponible ({product.stock} unidades)" if product.available else "❌ Agotado"
    )
    return (
        f"💰 *{product.name}*\n\n"
        f"Precio: *{format_price(product.price)}*\n"
        f"Stock: {stock_line}\n\n"
        "💬 ¿Te interesa? Puedes pedirlo escribiendo el nombre o enviando una nota de voz."
    )


def product_not_found(term: str) -> str:
    return (
        f"😅 No encontré \"{term}\" en nuestro catálogo.\n\n"
        "💡 Escribe *CATALOGO* para ver todos nuestros productos."
    )


def format_order(order: dict) -> str:
    """Itemized order summary with total."""
    lines = [f"🧾 *Pedido #{order['id']}* ({order['status']})"]
    total = 0.0
    for item in order["items"]:
        subtotal = item["quantity"] * item["unit_price"]
        total += subtotal
        lines.append(f"• {item['quantity']} x {item['name']} = {format_price(subtotal)}")
    if not order["items"]:
        lines.append("• (sin productos)")
    lines.append(f"\n*Total: {format_price(total)}*")
    if order.get("payment_method"):
        lines.append(f"Pago: {order['payment_method']}")
    return "\n".join(lines)


ASK_WHICH_PRODUCT = (
    "🔎 ¿De qué producto quieres saber el precio o la disponibilidad?\n\n"
    "Ejemplo: _¿cuánto cuesta el mouse logitech?_"
)
EMPTY_CATALOG = "😅 Por ahora no tenemos productos disponibles en esa categoría."
NO_ORDERS = "📭 Aún no tienes pedidos registrados.\n\nEscribe el producto que deseas pedir."
PROFILE_MENU = (
    "✏️ *¿Qué dato deseas actualizar?*\n\n"
    "• *CAMBIAR TELEFONO*\n"
    "• *CAMBIAR DIRECCION*\n"
    "• *CAMBIAR CORREO*\n\n"
    "Escribe *CANCELAR* para volver."
)
ASK_UPDATE_FIELD = {
    "telefono": f"📱 Escribe tu nuevo *número de teléfono* ({_val.phone_digits} dígitos):",
    "direccion": "🏠 Escribe tu nueva *dirección* de entrega:",
    "email": "📧 Escribe tu nuevo *correo electrónico*:",
}


def catalog_listing(products: list[ProductCandidate], title: str = "Catálogo") -> str:
    lines = [f"🛍️ *{title}*\n"]
    for product in products:
        mark = "✅" if product.available else "❌"
        lines.append(f"{mark} {product.name}: *{format_price(product.price)}*")
    lines.append("\n💬 Escribe el nombre del producto para pedirlo o preguntar por él.")
    return "\n".join(lines)


def order_created(order: dict, missing: list[str]) -> str:
    text = f"🛒 ¡Listo! Armé tu pedido:\n\n{format_order(order)}"
    if missing:
        text += "\n\n⚠️ No encontré: " + ", ".join(missing)
    return text + "\n\n¿Deseas agregar algo más? Escribe *CONFIRMO* para elegir el método de pago."


def items_added(order: dict) -> str:
    return (
        f"➕ Agregado a tu pedido:\n\n{format_order(order)}\n\n"
        "Escribe *CONFIRMO* para elegir el método de pago."
    )


def order_confirmed(order: dict) -> str:
    return (
        f"🎉 ¡Pedido confirmado!\n\n{format_order(order)}\n\n"
        "Gracias por tu compra. Te avisaremos cuando esté en camino."
    )


def wallet_instructions(wallet: str, number: str, holder: str, total: float) -> str:
    return (
        f"📲 *Pago con {wallet}*\n\n"
        f"Número: *{number}*\n"
        f"Titular: {holder}\n"
        f"Monto: *{format_price(total)}*\n\n"
        "Envía la captura del pago por aquí para validarlo."
    )


def confirm_cancel_prompt(order: dict) -> str:
    return (
        f"⚠️ Tu pedido #{order['id']} ya está *{order['status']}*.\n\n"
        "¿Seguro que deseas cancelarlo? Escribe *SI* o *CONFIRMO* para cancelar, "
        "o *NO* para mantenerlo."
    )


def order_cancelled(order_id) -> str:
    return f"🗑️ Pedido #{order_id} cancelado.\n\n¿En qué más puedo ayudarte?"


def order_history(orders: list[dict]) -> str:
    lines = ["📋 *Tus pedidos*\n"]
    for order in orders[-5:]:
        total = sum(i["quantity"] * i["unit_price"] for i in order["items"])
        lines.append(f"• #{order['id']}: {order['status']} ({format_price(total)})")
    return "\n".join(lines)


def account_status(client: dict, orders: list[dict]) -> str:
    pending = sum(1 for o in orders if o["status"] == "PENDIENTE")
    return (
        f"👤 *{client['name']}*\n\n"
        f"Teléfono: {client['phone']}\n"
        f"Correo: {client.get('email') or '-'}\n"
        f"Dirección: {client.get('address') or '-'}\n\n"
        f"Pedidos: {len(orders)} (pendientes: {pending})"
    )


def profile_updated(field_label: str) -> str:
    return f"✅ Tu {field_label} fue actualizado correctamente."


def operation_failed(message: str) -> str:
    return f"❌ {message}"
