import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DB_HOST", "localhost")
os.environ.setdefault("DB_USER", "user")
os.environ.setdefault("DB_PASSWORD", "password")
os.environ.setdefault("DB_NAME", "testdb")
os.environ.setdefault("CLICKUP_API_TOKEN", "pk_test_token")
os.environ.setdefault("CLICKUP_PRIVATE_LIST_ID", "901204857438")
os.environ.setdefault("CLICKUP_BUSINESS_LIST_ID", "901204857574")
os.environ.setdefault("IMPORT_PAGE_DELAY_SECONDS", "0")
