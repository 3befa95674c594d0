from dotenv import load_dotenv
load_dotenv()

import sys

from app.db import get_conn
from app.review_tables import REVIEW_SCHEMA_DOWN, run_review_schema, split_schema_statements


if "--down" in sys.argv:
    with get_conn() as conn:
        for stmt in split_schema_statements(REVIEW_SCHEMA_DOWN):
            conn.execute(stmt)
        conn.commit()
    print("ReplyMate schema dropped")
else:
    run_review_schema(get_conn)
    print("ReplyMate schema OK")
