import os

# Engine and settings are created at import time; keep tests off any real database.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("ATTENDANCE_TIMEZONE", "Asia/Kolkata")
os.environ.setdefault("SCHEMA_GUARD_STRICT", "false")
