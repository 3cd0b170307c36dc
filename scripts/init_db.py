import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from settings import Settings
from storage import HistoryStore


def init_db():
    settings = Settings.from_env()
    with HistoryStore(settings.db_path) as store:
        countries = len(store.list_country_names())
    print(f"Initialized database at {settings.db_path} ({countries} countries stored)")


if __name__ == "__main__":
    init_db()
