from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError

from storefront.config import settings

REQUIRED_TABLES = ("menu_item", "menu_item_variation", "menu_item_add_on")


def main() -> None:
    database_url = settings.database_url
    print(f"DATABASE_URL={database_url}")
    engine = create_engine(database_url, pool_pre_ping=True)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            tables = set(inspect(conn).get_table_names())
        print("DB connection OK")
    except SQLAlchemyError as exc:
        print("DB connection FAILED")
        print(exc)
        return
    missing = [name for name in REQUIRED_TABLES if name not in tables]
    if missing:
        print(f"Missing storefront tables: {', '.join(missing)}")
    else:
        print("Storefront tables present")


if __name__ == "__main__":
    main()
