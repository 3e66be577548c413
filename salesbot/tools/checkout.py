"""Configuration and cart tools backed by the checkout engine."""
from .types import Tool, ToolContext
from ..schemas.tool_inputs import (
    CartAddItemArgs,
    CartSetContactArgs,
    CartSetPaymentArgs,
    CartSetShippingArgs,
    CheckoutSubmitArgs,
    NoArgs,
)

PAYMENT_LABELS = {
    "cash": "Efectivo",
    "transfer": "Transferencia",
    "card": "Tarjeta",
}

SHIPPING_LABELS = {
    "domicilio": "Envío a domicilio",
    "punto_medio": "Punto medio",
    "recoleccion": "Recolección",
}


def shipping_hints(methods, config):
    hints = []
    config = config or {}
    if "recoleccion" in methods:
        if config.get("pickupAddress"):
            hints.append(f"Recolección en {config['pickupAddress']}")
        if config.get("pickupHours"):
            hints.append(f"Horario: {config['pickupHours']}")
    areas = config.get("meetupAreas")
    if "punto_medio" in methods and isinstance(areas, list) and areas:
        hints.append(f"Puntos sugeridos: {', '.join(areas)}")
    return hints


def get_payment_methods(args: NoArgs, ctx: ToolContext):
    methods = ctx.store.payment_methods(ctx.bot_id)
    return {
        "methods": methods,
        "labels": PAYMENT_LABELS,
        "human_readable": [PAYMENT_LABELS.get(m, m) for m in methods],
    }


def get_shipping_methods(args: NoArgs, ctx: ToolContext):
    methods, config = ctx.store.shipping_settings(ctx.bot_id)
    return {
        "methods": methods,
        "labels": SHIPPING_LABELS,
        "config": config,
        "human_readable": [SHIPPING_LABELS.get(m, m) for m in methods],
        "hints": shipping_hints(methods, config),
    }


def cart_add_item(args: CartAddItemArgs, ctx: ToolContext):
    return ctx.engine.add_item(args.sku, args.qty)


def cart_get(args: NoArgs, ctx: ToolContext):
    return ctx.engine.get_cart()


def cart_set_payment_method(args: CartSetPaymentArgs, ctx: ToolContext):
    return ctx.engine.set_payment_method(args.method)


def cart_set_shipping_method(args: CartSetShippingArgs, ctx: ToolContext):
    return ctx.engine.set_shipping_method(args.method, address=args.address, meetup_area=args.meetup_area)


def cart_set_contact(args: CartSetContactArgs, ctx: ToolContext):
    return ctx.engine.set_contact(name=args.name, phone=args.phone, notes=args.notes)


def checkout_submit(args: CheckoutSubmitArgs, ctx: ToolContext):
    return ctx.engine.submit_checkout(confirm=args.confirm, idempotency_key=args.idempotency_key)


CHECKOUT_TOOLS = [
    Tool(
        name="get_payment_methods",
        description="Obtiene los métodos de pago configurados por el dueño del bot. Devuelve las claves ('cash','transfer','card') y etiquetas legibles.",
        input_model=NoArgs,
        handler=get_payment_methods,
    ),
    Tool(
        name="get_shipping_methods",
        description="Obtiene los métodos de envío/entrega configurados (domicilio, punto_medio, recoleccion) y su configuración (pickupAddress, pickupHours, meetupAreas).",
        input_model=NoArgs,
        handler=get_shipping_methods,
    ),
    Tool(
        name="cart_add_item",
        description="Agrega un producto (por SKU) al carrito abierto del chat. Valida stock y devuelve el carrito actualizado.",
        input_model=CartAddItemArgs,
        handler=cart_add_item,
    ),
    Tool(
        name="cart_get",
        description="Devuelve el carrito abierto con artículos, subtotal, método de pago, envío y contacto.",
        input_model=NoArgs,
        handler=cart_get,
    ),
    Tool(
        name="cart_set_payment_method",
        description="Fija el método de pago del carrito. Debe ser uno de los configurados por el bot.",
        input_model=CartSetPaymentArgs,
        handler=cart_set_payment_method,
    ),
    Tool(
        name="cart_set_shipping_method",
        description="Fija el método de envío. Para domicilio envía address; para punto_medio envía meetup_area.",
        input_model=CartSetShippingArgs,
        handler=cart_set_shipping_method,
    ),
    Tool(
        name="cart_set_contact",
        description="Guarda nombre, teléfono y notas de contacto del cliente. Solo sobrescribe los datos enviados.",
        input_model=CartSetContactArgs,
        handler=cart_set_contact,
    ),
    Tool(
        name="checkout_submit",
        description="Registra la compra del carrito (venta pendiente de pago). Requiere pago, envío y contacto. Usa idempotencyKey para evitar duplicados.",
        input_model=CheckoutSubmitArgs,
        handler=checkout_submit,
    ),
]
