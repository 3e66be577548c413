import csv
import os
from decimal import Decimal

from .database import SessionLocal, create_tables, engine
from .inventory_store import get_or_create_bot
from .models import Product
from .text_index import ensure_text_index
from ..app.config import Config

CATALOG_CSV_PATH = os.path.join(os.path.dirname(__file__), "raw", "catalog.csv")

DEMO_PAYMENT_METHODS = ["cash", "transfer", "card"]
DEMO_SHIPPING_METHODS = ["domicilio", "punto_medio", "recoleccion"]
DEMO_SHIPPING_CONFIG = {
    "pickupAddress": "Av. Juárez 120, Centro",
    "pickupHours": "Lun a Sáb 10:00-19:00",
    "meetupAreas": ["Metro Insurgentes", "Plaza Universidad"],
}


def to_cents(price: str) -> int:
    return int(Decimal(price.replace("$", "").strip()) * 100)


def load_catalog(db, bot_id: int, path: str = CATALOG_CSV_PATH) -> int:
    """Insert the CSV products missing for the bot; returns how many were added."""
    added = 0
    with open(path, mode="r", encoding="utf-8") as csvfile:
        reader = csv.DictReader(csvfile)
        for row in reader:
            sku = row["sku"].strip().upper()
            exists = db.query(Product).filter(Product.bot_id == bot_id, Product.sku == sku).first()
            if exists:
                continue
            db.add(Product(
                bot_id=bot_id,
                sku=sku,
                name=row["name"].strip(),
                description=(row.get("description") or "").strip() or None,
                price_cents=to_cents(row["price"]),
                stock=int(row.get("stock") or 0),
            ))
            added += 1
    return added


def populate_products():
    """Create the demo bot with its checkout settings and seed the catalog."""
    # Ensure tables are created
    create_tables()

    db = SessionLocal()
    try:
        bot = get_or_create_bot(db, Config.OWNER_ID, Config.BOT_NAME)
        if not bot.payment_methods:
            bot.payment_methods = DEMO_PAYMENT_METHODS
        if not bot.shipping_methods:
            bot.shipping_methods = DEMO_SHIPPING_METHODS
            bot.shipping_config = DEMO_SHIPPING_CONFIG
        added = load_catalog(db, bot.id)
        db.commit()
        print(f"Successfully populated the products table ({added} new products).")
    except Exception as e:
        db.rollback()
        print(f"Error populating products table: {e}")
        raise
    finally:
        db.close()

    ensure_text_index(engine)


if __name__ == "__main__":
    populate_products()
