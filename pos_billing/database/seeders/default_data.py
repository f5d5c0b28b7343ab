from ...constants import DEFAULT_BILL_PREFIX, ROLE_OWNER


def seed(conn):
    # if no business exists, create the default one with its settings and an owner
    row = conn.execute("SELECT COUNT(*) AS n FROM businesses").fetchone()
    if row and row["n"] == 0:
        cur = conn.execute("INSERT INTO businesses(name) VALUES (?)", ("My Shop",))
        business_id = int(cur.lastrowid)
        conn.execute(
            """
            INSERT INTO business_settings(business_id, bill_prefix, tax_rate, apply_tax)
            VALUES (?, ?, 0, 1)
            """,
            (business_id, DEFAULT_BILL_PREFIX),
        )
        conn.execute(
            """
            INSERT INTO users(business_id, username, full_name, role)
            VALUES (?, 'owner', 'Owner', ?)
            """,
            (business_id, ROLE_OWNER),
        )
        conn.commit()
