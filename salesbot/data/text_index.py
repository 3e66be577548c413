"""Full-text index over products (SQLite FTS5).

The index is an external-content FTS5 table kept in sync by triggers. Stock
updates do not touch it. When the index is missing (or the database is not
SQLite) text search returns no hits and callers fall back to substring
matching.
"""
from typing import List, Tuple

from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from ..nlu.text_query import extract_keywords
from ..utils.logger import get_logger

logger = get_logger("text_index")

FTS_TABLE = "products_fts"

DDL = [
    f"""CREATE VIRTUAL TABLE IF NOT EXISTS {FTS_TABLE} USING fts5(
        sku, name, description,
        content='products', content_rowid='id',
        tokenize='unicode61 remove_diacritics 2'
    )""",
    f"""CREATE TRIGGER IF NOT EXISTS products_fts_ai AFTER INSERT ON products BEGIN
        INSERT INTO {FTS_TABLE}(rowid, sku, name, description)
        VALUES (new.id, new.sku, new.name, new.description);
    END""",
    f"""CREATE TRIGGER IF NOT EXISTS products_fts_ad AFTER DELETE ON products BEGIN
        INSERT INTO {FTS_TABLE}({FTS_TABLE}, rowid, sku, name, description)
        VALUES ('delete', old.id, old.sku, old.name, old.description);
    END""",
    f"""CREATE TRIGGER IF NOT EXISTS products_fts_au AFTER UPDATE OF sku, name, description ON products BEGIN
        INSERT INTO {FTS_TABLE}({FTS_TABLE}, rowid, sku, name, description)
        VALUES ('delete', old.id, old.sku, old.name, old.description);
        INSERT INTO {FTS_TABLE}(rowid, sku, name, description)
        VALUES (new.id, new.sku, new.name, new.description);
    END""",
]


def ensure_text_index(bind) -> bool:
    """Create the FTS table and triggers if needed and rebuild the index.

    Returns False when the backend cannot provide the index.
    """
    if bind.dialect.name != "sqlite":
        logger.warning("[TEXT_INDEX] dialect %s has no FTS5 support here", bind.dialect.name)
        return False
    try:
        with bind.begin() as conn:
            for stmt in DDL:
                conn.execute(text(stmt))
            conn.execute(text(f"INSERT INTO {FTS_TABLE}({FTS_TABLE}) VALUES ('rebuild')"))
    except OperationalError as e:
        logger.warning("[TEXT_INDEX] could not create index: %s", e)
        return False
    logger.info("[TEXT_INDEX] %s ready", FTS_TABLE)
    return True


def build_match_query(query: str) -> str:
    terms = extract_keywords(query)
    # each keyword becomes a quoted phrase; FTS5 tokenizes "ABC-1" as "abc 1"
    return " OR ".join('"' + t.replace('"', '""') + '"' for t in terms)


def search_ids(db, bot_id: int, query: str, limit: int = 8, in_stock_only: bool = False) -> List[Tuple[int, float]]:
    """Ranked (product_id, score) pairs; higher score is a better match."""
    match = build_match_query(query)
    if not match or db.get_bind().dialect.name != "sqlite":
        return []
    sql = (
        f"SELECT p.id AS id, -bm25({FTS_TABLE}) AS score "
        f"FROM {FTS_TABLE} JOIN products p ON p.id = {FTS_TABLE}.rowid "
        f"WHERE {FTS_TABLE} MATCH :match AND p.bot_id = :bot_id"
    )
    if in_stock_only:
        sql += " AND p.stock > 0"
    sql += f" ORDER BY bm25({FTS_TABLE}) LIMIT :limit"
    try:
        rows = db.execute(text(sql), {"match": match, "bot_id": bot_id, "limit": limit}).all()
    except OperationalError as e:
        # no index yet: the caller falls back to substring matching
        logger.warning("[TEXT_INDEX] search unavailable: %s", e)
        return []
    return [(row.id, float(row.score)) for row in rows]
