import json
from datetime import datetime, timedelta

import pytest

from chatbuddy.storage.base import StorageError, clamp_page, parse_end_date
from chatbuddy.storage.file_store import LEADS_FILE, FileStorage


def test_widget_config_merges_over_defaults(tmp_path):
    storage = FileStorage(str(tmp_path))
    assert storage.get_widget_config("tower-a")["projectId"] == "tower-a"

    storage.update_widget_config("tower-a", {"agentName": "Asha"})
    updated = storage.update_widget_config("tower-a", {"primaryColor": "#000"})
    assert updated["agentName"] == "Asha"
    assert updated["primaryColor"] == "#000"
    assert storage.get_widget_config("tower-a")["primaryColor"] == "#000"


def test_leads_listed_newest_first_with_filters(tmp_path):
    storage = FileStorage(str(tmp_path))
    for index, microsite in enumerate(("a.in", "b.in", "a.in")):
        storage.create_lead({
            "phone": f"+91987654321{index}",
            "bhk": 2,
            "bhk_type": "2 BHK",
            "microsite": microsite,
            "metadata": {"customerName": f"Visitor {index}"},
        })

    items, total = storage.list_leads(microsite="a.in")
    assert total == 2
    assert sorted(lead["phone"] for lead in items) == ["+919876543210", "+919876543212"]
    assert items[0]["created_at"] >= items[1]["created_at"]

    items, total = storage.list_leads(search="visitor 1")
    assert total == 1
    assert items[0]["microsite"] == "b.in"

    tomorrow = datetime.utcnow() + timedelta(days=1)
    assert storage.list_leads(start_date=tomorrow)[1] == 0


def test_corrupted_file_is_backed_up_and_reset(tmp_path):
    (tmp_path / LEADS_FILE).write_text("{broken", encoding="utf-8")
    storage = FileStorage(str(tmp_path))

    assert storage.list_leads() == ([], 0)
    backups = list(tmp_path.glob("leads.corrupted-*.json"))
    assert len(backups) == 1
    assert backups[0].read_text(encoding="utf-8") == "{broken"
    assert json.loads((tmp_path / LEADS_FILE).read_text(encoding="utf-8")) == {"leads": []}


def test_duplicate_username_rejected(tmp_path):
    storage = FileStorage(str(tmp_path))
    storage.create_user("ops", "hash", None, "admin")
    with pytest.raises(StorageError):
        storage.create_user("ops", "hash", None, "admin")


def test_page_and_date_helpers():
    assert clamp_page("5000", "-3") == (1000, 0)
    assert clamp_page("abc", None) == (50, 0)
    assert parse_end_date("2024-05-01") == datetime(2024, 5, 1, 23, 59, 59, 999999)
    assert parse_end_date("2024-05-01T10:00:00Z") == datetime(2024, 5, 1, 10, 0)
