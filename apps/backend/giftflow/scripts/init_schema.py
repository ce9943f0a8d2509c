import logging
import os

from giftflow.storage.postgres import SCHEMA_PATH, PostgresRowStore


def main() -> None:
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    url = os.getenv("GIFTFLOW_PG_URL")
    if not url:
        raise RuntimeError("GIFTFLOW_PG_URL missing")
    PostgresRowStore(url).apply_schema()
    print(f"Applied {SCHEMA_PATH.name}.")


if __name__ == "__main__":
    main()
