"""
Declarative keyword tables shared by every component.

Each concern (cancellation, affirmation, payment methods, transcription
corrections, intent weights) has exactly one table here. Keywords are
written in normalized form: lowercase, no diacritics, no punctuation,
so they can be matched directly against ``normalize()`` output.
"""

import re
from typing import Iterable, Optional

# ------------------------------------------------------------------ #
# Text correction
# ------------------------------------------------------------------ #

# Canonical word -> misheard or misspelled variants. No canonical form
# may appear as a variant of another entry, which keeps normalize()
# idempotent.
TRANSCRIPTION_CORRECTIONS: dict[str, tuple[str, ...]] = {
    "confirmo": ("firumon", "firmon", "confirno", "conconfirmo", "comfirmo"),
    "pedido": ("periodo", "pevivo", "pediro", "pedio", "perido"),
    "cancelar": ("gonzilar", "gonzillar", "cancilar", "cancillar", "canselar"),
    "transferencia": ("tranferencia", "transferensia", "trasferencia"),
    "efectivo": ("efectibo", "efetivo"),
    "yape": ("yapeo", "yapear", "llape"),
    "plin": ("plino", "plinar", "plim"),
    "quiero": ("kwero", "quierro", "kero", "kiero", "qero", "qiero"),
    "necesito": ("nesesito", "necesitio", "nesito"),
    "catalogo": ("katalogo",),
    "precio": ("presio",),
    "producto": ("produkto", "produto"),
    "adidas": ("adidaz", "adidass", "adidasz"),
    "nike": ("nikke", "niqe", "nique", "naik"),
    "puma": ("pumma",),
    "samsung": ("sansung", "samzung", "samsungg", "samsumg"),
    "lenovo": ("lenobo", "lenoba"),
    "mouse": ("maose", "maus", "mause", "mous"),
    "dell": ("deel",),
    "asus": ("assus",),
    "apple": ("aple", "apel"),
    "xiaomi": ("xiaom", "xiaommi"),
}

CORRECTION_LOOKUP: dict[str, str] = {
    variant: canonical
    for canonical, variants in TRANSCRIPTION_CORRECTIONS.items()
    for variant in variants
}

# Command words that voice input is fuzzily snapped to.
FUZZY_COMMAND_WORDS: tuple[str, ...] = (
    "confirmo", "pedido", "cancelar", "transferencia", "efectivo", "yape", "plin",
)

# Search-only folding: applied to product queries, never to commands.
SEARCH_SYNONYMS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\b(audiofonos|audifono|headset|auriculares?|headphones)\b"), "audifonos"),
    (re.compile(r"\b(playera|remera|polos?)\b"), "camiseta"),
    (re.compile(r"\b(notebooks?|portatil(es)?|laptops)\b"), "laptop"),
    (re.compile(r"\b(smart tv|smarttv|televisores|television|tv)\b"), "televisor"),
    (re.compile(r"\b(celu|celular|celulares|movil|smartphone)\b"), "telefono"),
    (re.compile(r"\bhdd\b"), "disco duro"),
    (re.compile(r"\bssd\b"), "solido ssd"),
    (re.compile(r"\b(keyboard|teclados)\b"), "teclado"),
    (re.compile(r"\b(pantalla|monitores)\b"), "monitor"),
    (re.compile(r"\b(printer|impresoras)\b"), "impresora"),
    (re.compile(r"\b(raton|ratones|mice)\b"), "mouse"),
]

STOPWORDS: frozenset[str] = frozenset({
    "el", "la", "los", "las", "un", "una", "unos", "unas",
    "de", "del", "al", "para", "por", "con", "sin", "y", "o", "u",
    "mi", "me", "quiero", "ver", "busco", "mostrar", "muestrame", "ensename",
    "precio", "precios", "barato", "baratos", "caro", "caros",
    "oferta", "ofertas", "catalogo",
})

# Vocabulary stripped before a product description is searched.
QUERY_NOISE: frozenset[str] = frozenset({
    "cuanto", "cuesta", "cuestan", "vale", "valen", "sale", "esta", "a",
    "tienes", "tienen", "hay", "disponible", "disponibles", "stock", "queda",
    "quedan", "dime", "saber", "necesito", "cual", "es", "que", "tiene",
    "dame", "deme", "comprar", "pedir", "agregar", "ponme", "traeme", "agrega",
    "favor", "porfa", "hola", "buenas", "buenos", "dias", "tardes", "noches",
})

# ------------------------------------------------------------------ #
# Conversation control vocabulary
# ------------------------------------------------------------------ #

CANCEL_WORDS: tuple[str, ...] = (
    "salir", "salirme", "cancelar", "cancel", "volver", "volver atras",
    "volver al inicio", "inicio", "empezar de nuevo", "comenzar de nuevo",
    "reiniciar", "resetear", "cerrar", "terminar", "acabar", "parar", "detener",
    "mejor no", "dejalo", "no importa", "olvidalo", "ya no quiero",
    "adios", "chau", "bye",
)

PASSWORD_CANCEL_WORDS: tuple[str, ...] = (
    "cancelar", "cancel", "volver", "volver atras", "inicio", "salir",
    "salirme", "no quiero", "mejor no",
)

AFFIRM_WORDS: tuple[str, ...] = (
    "si", "s", "yes", "y", "ok", "okey", "claro", "correcto", "cliente",
    "registrado", "tengo cuenta", "ya tengo", "soy cliente", "si soy",
    "soy registrado", "si estoy",
)

NEGATE_WORDS: tuple[str, ...] = (
    "no", "n", "tampoco", "no soy", "no estoy", "no tengo", "no tengo cuenta",
    "todavia no", "aun no",
)

CONFIRM_WORDS: tuple[str, ...] = (
    "si", "confirmo", "confirmar", "acepto", "aceptar", "ok", "okay", "yes",
)

KEEP_WORDS: tuple[str, ...] = ("no", "cancelar", "cancel", "volver")

FORGOT_PASSWORD_WORDS: tuple[str, ...] = (
    "olvide", "olvidado", "olvido", "no recuerdo", "no me acuerdo", "recuperar",
    "perdi mi contrasena", "perdi la contrasena", "restablecer",
)

REGISTER_WORDS: tuple[str, ...] = ("registrar", "registrarme", "registro", "crear cuenta")

GUEST_ORDER_WORDS: tuple[str, ...] = ("pedido", "hacer pedido", "hacer un pedido")

PAYMENT_METHODS: dict[str, tuple[str, ...]] = {
    "TRANSFERENCIA": ("transferencia", "transferir", "deposito", "banco", "bancaria"),
    "EFECTIVO": ("efectivo", "cash", "contado", "contraentrega"),
    "YAPE": ("yape",),
    "PLIN": ("plin",),
}

# Single-word commands answered without any AI or contextual logic.
QUICK_COMMANDS: dict[str, str] = {
    "catalogo": "show_catalog",
    "catalog": "show_catalog",
    "productos": "show_catalog",
    "ayuda": "show_help",
    "help": "show_help",
    "comandos": "show_help",
    "menu": "show_help",
    "estado": "check_status",
}

PRICE_QUERY = re.compile(
    r"\b(cuanto|precio|vale|cuesta|a cuanto|cuanto sale|cuanto esta|"
    r"cual es el precio|dime el precio)\b"
)
STOCK_QUERY = re.compile(r"\b(tienes|hay|disponible|stock|tienen|queda|quedan)\b")
ORDER_VOCABULARY = re.compile(
    r"\b(quiero|necesito|dame|deme|comprar|pedir|agregar|agrega|anade|ponme|"
    r"traeme|me llevo|llevo|pedido)\b"
)

# ------------------------------------------------------------------ #
# Intent scoring
# ------------------------------------------------------------------ #

INTENT_KEYWORDS: dict[str, dict[str, float]] = {
    "greeting": {"hola": 1.0, "hi": 0.9, "hello": 0.9, "buenos": 0.8,
                 "buenas": 0.8, "saludos": 0.7, "que tal": 0.7},
    "catalog": {"catalogo": 1.0, "productos": 0.9, "lista": 0.8,
                "ver productos": 1.0},
    "help": {"ayuda": 1.0, "help": 0.9, "comandos": 0.8,
             "que puedo hacer": 0.9, "opciones": 0.7},
    "status": {"estado": 0.9, "mi pedido": 0.8, "ver pedido": 0.9},
    "order": {"quiero": 0.9, "necesito": 0.9, "dame": 0.8, "comprar": 0.8,
              "pedir": 0.8, "agregar": 0.7, "ponme": 0.7, "traeme": 0.7},
    "cancel": {"cancelar": 1.0, "salir": 0.8, "volver": 0.7,
               "dejalo": 0.8, "olvidalo": 0.8},
    "price": {"precio": 1.0, "cuesta": 0.9, "cuanto": 0.9, "vale": 0.8},
    "stock": {"stock": 1.0, "disponible": 0.9, "tienes": 0.7,
              "queda": 0.7, "hay": 0.6},
    "yes": {"si": 0.9, "ok": 0.8, "okey": 0.8, "acepto": 0.9,
            "confirmo": 1.0, "correcto": 0.8},
    "no": {"no": 0.9, "tampoco": 0.8, "mejor no": 0.9, "no gracias": 0.9},
    "register": {"registrar": 1.0, "registro": 0.9, "crear cuenta": 1.0,
                 "nueva cuenta": 0.9},
    "temp_order": {"orden temporal": 1.0, "sin registro": 0.9},
}

# Mispronounced variants rewritten before re-running the keyword scorer.
PHONETIC_VARIANTS: dict[str, tuple[str, ...]] = {
    "quiero": ("quier", "kier", "qier"),
    "necesito": ("neces", "nesesit", "necesit"),
    "producto": ("produk", "product"),
    "catalogo": ("katalo", "catalo", "katalog"),
    "precio": ("preci", "presi"),
    "disponible": ("disponibl", "dispon"),
}

# Intents accepted from each state. Anything else is noise for routing.
STATE_INTENTS: dict[str, frozenset[str]] = {
    "idle": frozenset({
        "greeting", "catalog", "help", "order", "register", "status",
        "order_status", "price", "stock", "temp_order", "cancel",
        "order_history", "account_status", "modify_profile", "update_phone",
        "update_address", "update_email", "product_category",
    }),
    "awaiting_client_confirmation": frozenset({"yes", "no"}),
    "awaiting_phone": frozenset({"phone_input", "cancel"}),
    "awaiting_password": frozenset({"password_input", "forgot_password", "cancel"}),
    "awaiting_sms_code": frozenset({"code_input", "cancel"}),
    "awaiting_reg_name": frozenset({"text_input", "cancel"}),
    "awaiting_reg_dni": frozenset({"text_input", "cancel"}),
    "awaiting_reg_email": frozenset({"email_input", "cancel"}),
    "awaiting_reg_password": frozenset({"password_input", "cancel"}),
    "awaiting_temp_name": frozenset({"text_input", "cancel"}),
    "awaiting_temp_dni": frozenset({"text_input", "cancel"}),
    "awaiting_payment_method": frozenset({"payment_method", "cancel"}),
    "awaiting_cancel_confirmation": frozenset({"yes", "no"}),
    "awaiting_update_telefono": frozenset({"text_input", "cancel"}),
    "awaiting_update_direccion": frozenset({"text_input", "cancel"}),
    "awaiting_update_email": frozenset({"email_input", "cancel"}),
}

# Intents the contextual strategy expects from each state.
CONTEXT_EXPECTED: dict[str, frozenset[str]] = {
    "awaiting_client_confirmation": frozenset({"yes", "no"}),
    "awaiting_phone": frozenset({"phone_input"}),
    "awaiting_password": frozenset({"password_input", "forgot_password"}),
    "awaiting_sms_code": frozenset({"code_input"}),
    "awaiting_reg_name": frozenset({"text_input"}),
    "awaiting_reg_dni": frozenset({"text_input"}),
    "awaiting_reg_email": frozenset({"email_input"}),
    "awaiting_reg_password": frozenset({"password_input"}),
    "awaiting_temp_name": frozenset({"text_input"}),
    "awaiting_temp_dni": frozenset({"text_input"}),
    "awaiting_payment_method": frozenset({"payment_method"}),
    "awaiting_cancel_confirmation": frozenset({"yes", "no"}),
}

# ------------------------------------------------------------------ #
# Keyword fallback classifier
# ------------------------------------------------------------------ #

FALLBACK_COMMANDS: dict[str, tuple[str, ...]] = {
    "greeting": ("hola", "buenos dias", "buenas tardes", "buenas noches", "hey"),
    "catalog": ("catalogo", "productos", "lista", "que venden", "que tienen"),
    "help": ("ayuda", "help", "comandos", "menu"),
    "status": ("estado", "mi pedido", "ver pedido"),
    "cancel": ("cancelar", "anular"),
}

FALLBACK_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("order_history", re.compile(r"\b(mis pedidos|historial|mis compras|pedidos anteriores)\b")),
    ("account_status", re.compile(r"\b(estado de cuenta|mi cuenta|mis datos)\b")),
    ("update_phone", re.compile(r"\b(cambiar|actualizar|modificar) (mi )?(telefono|numero|celular)\b")),
    ("update_address", re.compile(r"\b(cambiar|actualizar|modificar) (mi )?direccion\b")),
    ("update_email", re.compile(r"\b(cambiar|actualizar|modificar) (mi )?(email|correo)\b")),
    ("modify_profile", re.compile(r"\b(modificar|editar|actualizar|cambiar) (mi )?(perfil|datos)\b")),
]

PRODUCT_CATEGORIES: tuple[str, ...] = (
    "laptop", "mouse", "teclado", "monitor", "audifonos", "telefono",
    "impresora", "televisor", "camiseta", "zapatillas", "sony", "samsung",
    "lenovo", "hp", "dell", "apple", "xiaomi", "logitech",
)


def contains_phrase(text: str, phrases: Iterable[str]) -> bool:
    """True when any phrase occurs in ``text`` on word boundaries."""
    padded = f" {text} "
    return any(f" {phrase} " in padded for phrase in phrases)


def matched_phrases(text: str, phrases: Iterable[str]) -> list[str]:
    padded = f" {text} "
    return [phrase for phrase in phrases if f" {phrase} " in padded]


def match_payment_method(text: str) -> Optional[str]:
    """Return the canonical payment method named in ``text``, if any."""
    for method, words in PAYMENT_METHODS.items():
        if contains_phrase(text, words):
            return method
    return None
