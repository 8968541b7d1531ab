import sys
from pathlib import Path

import ibis
import pytest

# Ensure project root and src/ are importable without installing the package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
for path in (ROOT, SRC):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))


@pytest.fixture
def duckdb_con():
    con = ibis.duckdb.connect(database=":memory:")
    yield con
    con.disconnect()
