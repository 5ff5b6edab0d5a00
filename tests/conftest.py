import os

# keep the module-level engine off the on-disk default while tests import main
os.environ.setdefault("TRADEBOOK_DATABASE_URL", "sqlite+pysqlite:///:memory:")
