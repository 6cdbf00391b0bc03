#!/usr/bin/env python3
"""Initialize a DuckDB database whose statistics the costq examples use."""

import duckdb
from pathlib import Path


def init_duckdb(db_path: str = "data/costq.duckdb", order_count: int = 20000):
    """Initialize DuckDB database with sample collections.

    The collections cover every index class the statistics collector reports:
    ``customers`` has a primary key (full), ``orders`` a secondary index
    (partial) and ``events`` no index at all (none).

    Args:
        db_path: Path to DuckDB database file
        order_count: Number of generated orders
    """
    db_file = Path(db_path)
    db_file.parent.mkdir(parents=True, exist_ok=True)

    conn = duckdb.connect(str(db_file))

    print(f"Initializing DuckDB at {db_path}...")

    conn.execute("DROP TABLE IF EXISTS main.customers")
    conn.execute("DROP TABLE IF EXISTS main.orders")
    conn.execute("DROP TABLE IF EXISTS main.events")

    conn.execute("""
        CREATE TABLE main.customers (
            id INTEGER PRIMARY KEY,
            name VARCHAR NOT NULL,
            email VARCHAR NOT NULL,
            country VARCHAR,
            signup_date DATE
        )
    """)

    conn.execute("""
        CREATE TABLE main.orders (
            order_id INTEGER,
            customer_id INTEGER,
            status VARCHAR,
            total DOUBLE,
            created_at TIMESTAMP
        )
    """)
    conn.execute("CREATE INDEX idx_orders_customer ON main.orders (customer_id)")

    conn.execute("""
        CREATE TABLE main.events (
            kind VARCHAR,
            payload VARCHAR,
            recorded_at TIMESTAMP
        )
    """)

    conn.execute("""
        INSERT INTO main.customers (id, name, email, country, signup_date) VALUES
            (1, 'Alice Johnson', 'alice@example.com', 'USA', '2023-01-15'),
            (2, 'Bob Smith', 'bob@example.com', 'USA', '2023-02-20'),
            (3, 'Carol White', 'carol@example.com', 'UK', '2023-01-18'),
            (4, 'David Brown', 'david@example.com', 'Germany', '2023-02-05'),
            (5, 'Eve Davis', 'eve@example.com', 'Japan', '2023-01-30')
    """)

    conn.execute(
        """
        INSERT INTO main.orders
        SELECT
            i AS order_id,
            1 + i % 5 AS customer_id,
            CASE WHEN i % 3 = 0 THEN 'shipped' ELSE 'pending' END AS status,
            (i % 97) * 10.5 AS total,
            TIMESTAMP '2024-01-01' + INTERVAL (i) MINUTE AS created_at
        FROM range(?) AS t(i)
        """,
        [order_count],
    )

    conn.execute("""
        INSERT INTO main.events
        SELECT 'click', '{"page": ' || i || '}', TIMESTAMP '2024-01-01' + INTERVAL (i) SECOND
        FROM range(50) AS t(i)
    """)

    for table in ("customers", "orders", "events"):
        count = conn.execute(f"SELECT COUNT(*) FROM main.{table}").fetchone()[0]
        print(f"✓ Created {count} {table}")

    conn.close()
    print(f"\nDuckDB initialized successfully at {db_path}")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Initialize DuckDB with sample data")
    parser.add_argument(
        "--path",
        default="data/costq.duckdb",
        help="Path to DuckDB database file (default: data/costq.duckdb)",
    )
    parser.add_argument(
        "--orders",
        type=int,
        default=20000,
        help="Number of generated orders (default: 20000)",
    )
    args = parser.parse_args()

    init_duckdb(args.path, args.orders)
