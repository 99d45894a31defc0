"""
Catalog and commerce collaborator.

``CommerceClient`` is the narrow interface the router and dispatcher use:
product search, client lookup and authentication, registration, and the
order lifecycle. ``InMemoryCommerce`` is a seeded mock used by the
console demo and the tests. In production this would call the store's
backend API.
"""

import itertools
import secrets
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, TypedDict

from dialogue_router.logging_context import get_turn_logger
from dialogue_router.nlu.normalizer import normalize, normalize_for_search
from dialogue_router.schemas.product_schema import OrderLine, ProductCandidate
from dialogue_router.utils import normalize_phone, phone_variants

logger = get_turn_logger(__name__)


class ProductRecord(TypedDict):
    id: int
    name: str
    brand: str
    category: str
    price: float
    stock: int


class ClientRecord(TypedDict):
    id: int
    name: str
    phone: str
    dni: str
    email: str
    address: str
    password: str


class OrderItem(TypedDict):
    product_id: int
    name: str
    quantity: int
    unit_price: float


class OrderRecord(TypedDict):
    id: int
    customer_key: str
    client_id: Optional[int]
    items: list[OrderItem]
    status: str
    payment_method: Optional[str]


ORDER_PENDING = "PENDIENTE"
ORDER_CONFIRMED = "CONFIRMADO"
ORDER_CANCELLED = "CANCELADO"


@dataclass
class CommerceResult:
    """Outcome of a backend operation. ``message`` is shown to the customer on failure."""
    success: bool
    message: str = ""
    data: Any = None


class CommerceClient(Protocol):
    async def search_products(self, term: str, limit: int = 5) -> list[ProductCandidate]: ...

    async def get_product(self, product_id: int) -> Optional[ProductCandidate]: ...

    async def list_catalog(self, limit: int = 20) -> list[ProductCandidate]: ...

    async def find_client_by_phone(self, phone: str) -> Optional[ClientRecord]: ...

    async def verify_password(self, client_id: int, password: str) -> Optional[str]: ...

    async def send_verification_code(self, phone: str, code: str) -> bool: ...

    async def register_client(
        self, name: str, dni: str, email: str, password: str, phone: str
    ) -> CommerceResult: ...

    async def update_client(self, client_id: int, field_name: str, value: str) -> CommerceResult: ...

    async def create_order(
        self, customer_key: str, lines: list[OrderLine], client_id: Optional[int] = None
    ) -> CommerceResult: ...

    async def add_item(self, order_id: int, product_id: int, quantity: int = 1) -> CommerceResult: ...

    async def remove_item(self, order_id: int, product_name: str) -> CommerceResult: ...

    async def update_item_quantity(
        self, order_id: int, product_name: str, quantity: int
    ) -> CommerceResult: ...

    async def get_order(self, order_id: int) -> Optional[OrderRecord]: ...

    async def list_orders(self, customer_key: str) -> list[OrderRecord]: ...

    async def confirm_order(self, order_id: int, payment_method: str) -> CommerceResult: ...

    async def cancel_order(self, order_id: int) -> CommerceResult: ...


_SEED_PRODUCTS: list[ProductRecord] = [
    {"id": 1, "name": "Laptop Lenovo IdeaPad 3", "brand": "lenovo",
     "category": "laptop", "price": 2499.00, "stock": 8},
    {"id": 2, "name": "Laptop HP Pavilion 15", "brand": "hp",
     "category": "laptop", "price": 2899.90, "stock": 0},
    {"id": 3, "name": "Mouse Logitech M185", "brand": "logitech",
     "category": "mouse", "price": 59.90, "stock": 40},
    {"id": 4, "name": "Teclado Logitech K120", "brand": "logitech",
     "category": "teclado", "price": 49.90, "stock": 25},
    {"id": 5, "name": "Monitor Samsung 24 pulgadas", "brand": "samsung",
     "category": "monitor", "price": 699.00, "stock": 6},
    {"id": 6, "name": "Audifonos Sony WH-1000XM5", "brand": "sony",
     "category": "audifonos", "price": 1399.00, "stock": 3},
    {"id": 7, "name": "Celular Samsung Galaxy A15", "brand": "samsung",
     "category": "telefono", "price": 749.00, "stock": 12},
    {"id": 8, "name": "Impresora Epson L3250", "brand": "epson",
     "category": "impresora", "price": 789.00, "stock": 4},
    {"id": 9, "name": "Zapatillas Adidas Runfalcon", "brand": "adidas",
     "category": "zapatillas", "price": 229.90, "stock": 15},
]

_SEED_CLIENTS: list[ClientRecord] = [
    {"id": 1, "name": "Ana Torres", "phone": "51987654321", "dni": "45678912",
     "email": "ana.torres@correo.pe", "address": "Av. Arequipa 1234, Lima", "password": "clave123"},
    {"id": 2, "name": "Luis Ramos", "phone": "51912345678", "dni": "41234567",
     "email": "luis.ramos@correo.pe", "address": "Jr. Cusco 456, Arequipa", "password": "secreto9"},
]


def _to_candidate(record: ProductRecord) -> ProductCandidate:
    return ProductCandidate(
        id=record["id"],
        name=record["name"],
        price=record["price"],
        stock=record["stock"],
        brand=record["brand"],
        category=record["category"],
    )


@dataclass
class InMemoryCommerce:
    """Seeded in-process backend. Each instance owns its own data."""

    products: dict[int, ProductRecord] = field(default_factory=dict)
    clients: dict[int, ClientRecord] = field(default_factory=dict)
    orders: dict[int, OrderRecord] = field(default_factory=dict)
    sent_codes: list[tuple[str, str]] = field(default_factory=list)
    tokens: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.products and not self.clients:
            self.reset()
            return
        self._order_ids = itertools.count(max(self.orders, default=1000) + 1)
        self._client_ids = itertools.count(max(self.clients, default=0) + 1)

    def reset(self) -> None:
        """Restore the seed data. Call between tests for isolation."""
        self.products = {p["id"]: dict(p) for p in _SEED_PRODUCTS}  # type: ignore[misc]
        self.clients = {c["id"]: dict(c) for c in _SEED_CLIENTS}  # type: ignore[misc]
        self.orders = {}
        self.sent_codes = []
        self.tokens = {}
        self._order_ids = itertools.count(1001)
        self._client_ids = itertools.count(len(self.clients) + 1)

    # ------------------------------------------------------------------ #
    # Catalog
    # ------------------------------------------------------------------ #

    async def search_products(self, term: str, limit: int = 5) -> list[ProductCandidate]:
        """Products whose name, brand or category contain every search token."""
        tokens = normalize_for_search(term).split()
        if not tokens:
            return []
        hits = []
        for record in self.products.values():
            haystack = f" {normalize(record['name'])} {record['brand']} {record['category']} "
            if all(token in haystack for token in tokens):
                hits.append(record)
        hits.sort(key=lambda r: (r["stock"] <= 0, r["price"]))
        logger.debug("Product search %r -> %d hits", term, len(hits))
        return [_to_candidate(r) for r in hits[:limit]]

    async def get_product(self, product_id: int) -> Optional[ProductCandidate]:
        record = self.products.get(product_id)
        return _to_candidate(record) if record else None

    async def list_catalog(self, limit: int = 20) -> list[ProductCandidate]:
        records = sorted(self.products.values(), key=lambda r: (r["category"], r["price"]))
        return [_to_candidate(r) for r in records[:limit]]

    # ------------------------------------------------------------------ #
    # Clients
    # ------------------------------------------------------------------ #

    async def find_client_by_phone(self, phone: str) -> Optional[ClientRecord]:
        variants = set(phone_variants(phone))
        for client in self.clients.values():
            if client["phone"] in variants or normalize_phone(client["phone"]) in variants:
                logger.debug("Client found for %s: %s", phone, client["name"])
                return client
        return None

    async def verify_password(self, client_id: int, password: str) -> Optional[str]:
        client = self.clients.get(client_id)
        if client is None or client["password"] != password:
            return None
        token = secrets.token_hex(16)
        self.tokens[token] = client_id
        return token

    async def send_verification_code(self, phone: str, code: str) -> bool:
        self.sent_codes.append((phone, code))
        logger.info("Verification code sent to %s", phone)
        return True

    async def register_client(
        self, name: str, dni: str, email: str, password: str, phone: str
    ) -> CommerceResult:
        if any(c["dni"] == dni for c in self.clients.values()):
            return CommerceResult(False, "Ya existe un cliente registrado con ese DNI.")
        if any(c["email"] == email for c in self.clients.values()):
            return CommerceResult(False, "Ya existe un cliente registrado con ese correo.")
        client_id = next(self._client_ids)
        client: ClientRecord = {
            "id": client_id, "name": name, "phone": normalize_phone(phone), "dni": dni,
            "email": email, "address": "", "password": password,
        }
        self.clients[client_id] = client
        token = secrets.token_hex(16)
        self.tokens[token] = client_id
        logger.info("New client registered: %s (%s)", name, client["phone"])
        return CommerceResult(True, data={"client": client, "token": token})

    async def update_client(self, client_id: int, field_name: str, value: str) -> CommerceResult:
        field_map = {"telefono": "phone", "direccion": "address", "email": "email"}
        client = self.clients.get(client_id)
        if client is None or field_name not in field_map:
            return CommerceResult(False, "No se pudo actualizar tus datos.")
        client[field_map[field_name]] = value  # type: ignore[literal-required]
        return CommerceResult(True, data=client)

    # ------------------------------------------------------------------ #
    # Orders
    # ------------------------------------------------------------------ #

    async def create_order(
        self, customer_key: str, lines: list[OrderLine], client_id: Optional[int] = None
    ) -> CommerceResult:
        order: OrderRecord = {
            "id": next(self._order_ids), "customer_key": customer_key, "client_id": client_id,
            "items": [], "status": ORDER_PENDING, "payment_method": None,
        }
        missing = []
        for line in lines:
            found = await self.search_products(line.name, limit=1)
            if not found:
                missing.append(line.name)
                continue
            order["items"].append({
                "product_id": found[0].id, "name": found[0].name,
                "quantity": line.quantity, "unit_price": found[0].price,
            })
        if lines and not order["items"]:
            return CommerceResult(False, "No encontré los productos solicitados.", data=missing)
        self.orders[order["id"]] = order
        logger.info("Order %s created for %s", order["id"], customer_key)
        return CommerceResult(True, data={"order": order, "missing": missing})

    async def add_item(self, order_id: int, product_id: int, quantity: int = 1) -> CommerceResult:
        order = self.orders.get(order_id)
        product = self.products.get(product_id)
        if order is None or order["status"] != ORDER_PENDING:
            return CommerceResult(False, "No se encontró un pedido activo.")
        if product is None:
            return CommerceResult(False, "Producto no encontrado.")
        if product["stock"] < quantity:
            return CommerceResult(False, f"Solo quedan {product['stock']} unidades de {product['name']}.")
        for item in order["items"]:
            if item["product_id"] == product_id:
                item["quantity"] += quantity
                break
        else:
            order["items"].append({
                "product_id": product_id, "name": product["name"],
                "quantity": quantity, "unit_price": product["price"],
            })
        return CommerceResult(True, data=order)

    def _find_item(self, order: OrderRecord, product_name: str) -> Optional[OrderItem]:
        tokens = normalize_for_search(product_name).split()
        for item in order["items"]:
            name = normalize(item["name"])
            if tokens and all(token in name for token in tokens):
                return item
        return None

    async def remove_item(self, order_id: int, product_name: str) -> CommerceResult:
        order = self.orders.get(order_id)
        if order is None or order["status"] != ORDER_PENDING:
            return CommerceResult(False, "No se encontró un pedido activo.")
        item = self._find_item(order, product_name)
        if item is None:
            return CommerceResult(False, f"No encontré \"{product_name}\" en tu pedido.")
        order["items"].remove(item)
        return CommerceResult(True, data=order)

    async def update_item_quantity(
        self, order_id: int, product_name: str, quantity: int
    ) -> CommerceResult:
        order = self.orders.get(order_id)
        if order is None or order["status"] != ORDER_PENDING:
            return CommerceResult(False, "No se encontró un pedido activo.")
        item = self._find_item(order, product_name)
        if item is None:
            return CommerceResult(False, f"No encontré \"{product_name}\" en tu pedido.")
        if quantity <= 0:
            order["items"].remove(item)
        else:
            item["quantity"] = quantity
        return CommerceResult(True, data=order)

    async def get_order(self, order_id: int) -> Optional[OrderRecord]:
        return self.orders.get(order_id)

    async def list_orders(self, customer_key: str) -> list[OrderRecord]:
        return [o for o in self.orders.values() if o["customer_key"] == customer_key]

    async def confirm_order(self, order_id: int, payment_method: str) -> CommerceResult:
        order = self.orders.get(order_id)
        if order is None or order["status"] != ORDER_PENDING:
            return CommerceResult(False, "No se encontró un pedido activo.")
        if not order["items"]:
            return CommerceResult(False, "Tu pedido está vacío.")
        for item in order["items"]:
            product = self.products[item["product_id"]]
            if product["stock"] < item["quantity"]:
                return CommerceResult(False, f"Stock insuficiente para {product['name']}.")
        for item in order["items"]:
            self.products[item["product_id"]]["stock"] -= item["quantity"]
        order["status"] = ORDER_CONFIRMED
        order["payment_method"] = payment_method
        logger.info("Order %s confirmed with %s", order_id, payment_method)
        return CommerceResult(True, data=order)

    async def cancel_order(self, order_id: int) -> CommerceResult:
        order = self.orders.get(order_id)
        if order is None or order["status"] == ORDER_CANCELLED:
            return CommerceResult(False, "No se encontró el pedido.")
        if order["status"] == ORDER_CONFIRMED:
            for item in order["items"]:
                self.products[item["product_id"]]["stock"] += item["quantity"]
        order["status"] = ORDER_CANCELLED
        logger.info("Order %s cancelled", order_id)
        return CommerceResult(True, data=order)


def order_total(order: OrderRecord) -> float:
    return sum(item["quantity"] * item["unit_price"] for item in order["items"])
