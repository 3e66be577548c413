#!/usr/bin/env python3
"""
Database State Checker

Prints the catalog, open carts, sales and the inventory ledger.
"""

from salesbot.data.database import SessionLocal
from salesbot.data.models import Cart, CartStatus, Chatbot, InventoryLedger, Product, Sale


def check_database_state():
    """Check and display the current database state."""
    db = SessionLocal()

    try:
        print("=" * 80)
        print("CURRENT DATABASE STATE")
        print("=" * 80)

        for bot in db.query(Chatbot).all():
            print(f"\nBot #{bot.id} {bot.name} (owner {bot.owner_user_id})")
            print(f"  payment: {bot.payment_methods}  shipping: {bot.shipping_methods}")

        products = db.query(Product).order_by(Product.sku).all()
        print(f"\nProducts ({len(products)} total):")
        for p in products:
            print(f"  - {p.sku} {p.name}: {p.stock} in stock @ ${p.price_cents / 100:.2f}")

        carts = db.query(Cart).filter(Cart.status == CartStatus.open).all()
        print(f"\nOpen carts ({len(carts)} total):")
        for c in carts:
            print(f"  - cart #{c.id} chat {c.chat_id}: {len(c.items)} items, subtotal ${c.subtotal_cents / 100:.2f}")

        sales = db.query(Sale).order_by(Sale.id.desc()).all()
        print(f"\nSales ({len(sales)} total):")
        for s in sales:
            lines = ", ".join(f"{it.sku} x{it.qty}" for it in s.items)
            print(f"  - sale #{s.id} [{s.status.value}] ${s.total_cents / 100:.2f}: {lines}")

        entries = db.query(InventoryLedger).order_by(InventoryLedger.id).all()
        print(f"\nLedger ({len(entries)} entries):")
        for e in entries:
            print(f"  - product {e.product_id}: {e.delta:+d} ({e.reason.value}, sale {e.ref})")

        print("\n" + "=" * 80)
    finally:
        db.close()


if __name__ == "__main__":
    check_database_state()
