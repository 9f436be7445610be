from __future__ import annotations


def ensure_schema(conn) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS documents (
            collection text NOT NULL,
            id text NOT NULL,
            data jsonb NOT NULL,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now(),
            PRIMARY KEY (collection, id)
        );
        """
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS documents_data_gin_idx ON documents USING gin (data jsonb_path_ops);"
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS documents_collection_idx ON documents (collection);"
    )
    conn.commit()
    cur.close()
