"""Catalog tools: search, lookup, stock check and paginated listing."""
from .types import Tool, ToolContext
from ..data.inventory_store import product_to_dict
from ..nlu.text_query import extract_keywords
from ..schemas.tool_inputs import (
    CheckStockArgs,
    ListAllProductsArgs,
    ProductSearchArgs,
    SearchInventoryArgs,
    SkuArgs,
)


def search_inventory(args: SearchInventoryArgs, ctx: ToolContext):
    return ctx.store.search_substring(ctx.bot_id, args.query, limit=args.limit)


def product_search(args: ProductSearchArgs, ctx: ToolContext):
    store = ctx.store
    items = store.search_by_text(ctx.bot_id, args.query, limit=args.limit, in_stock_only=args.in_stock_only)
    if not items:
        items = store.search_by_keywords(
            ctx.bot_id, extract_keywords(args.query), limit=args.limit, in_stock_only=args.in_stock_only
        )
    return {"items": items, "count": len(items)}


def get_product_by_sku(args: SkuArgs, ctx: ToolContext):
    product = ctx.store.find_product(ctx.bot_id, args.sku.strip().upper())
    return product_to_dict(product) if product else None


def check_stock(args: CheckStockArgs, ctx: ToolContext):
    product = ctx.store.find_product(ctx.bot_id, args.sku.strip().upper())
    if not product:
        return {"ok": False, "reason": "SKU no encontrado"}
    stock = product.stock or 0
    return {
        "ok": stock >= args.qty,
        "available": stock,
        "request": args.qty,
        "name": product.name,
        "price_cents": product.price_cents,
    }


def list_all_products(args: ListAllProductsArgs, ctx: ToolContext):
    items, next_after_id = ctx.store.list_products(
        ctx.bot_id,
        in_stock_only=args.in_stock_only,
        limit=args.limit,
        after_id=args.after_id,
        order_by=args.order_by,
    )
    result = {"items": items, "count": len(items)}
    if next_after_id is not None:
        result["next_after_id"] = next_after_id
    return result


CATALOG_TOOLS = [
    Tool(
        name="search_inventory",
        description="Busca productos del catálogo del bot por texto (nombre/sku/descripción). Devuelve hasta N resultados.",
        input_model=SearchInventoryArgs,
        handler=search_inventory,
    ),
    Tool(
        name="product_search",
        description="Búsqueda por relevancia (texto completo) en el catálogo. Úsala para preguntas como '¿tienes sudaderas negras?'.",
        input_model=ProductSearchArgs,
        handler=product_search,
    ),
    Tool(
        name="get_product_by_sku",
        description="Obtiene un producto del catálogo del bot por SKU exacto.",
        input_model=SkuArgs,
        handler=get_product_by_sku,
    ),
    Tool(
        name="check_stock",
        description="Verifica si hay stock suficiente para un SKU y cantidad dada.",
        input_model=CheckStockArgs,
        handler=check_stock,
    ),
    Tool(
        name="list_all_products",
        description=(
            "Lista todo el catálogo paginado. Usa in_stock_only=true para solo disponibles y "
            "after_id con el next_after_id recibido para la siguiente página."
        ),
        input_model=ListAllProductsArgs,
        handler=list_all_products,
    ),
]
