"""Tests for cli/admin.py."""

import json

import pytest
import yaml

from cli.admin import build_parser, main
from internly.docstore import MemoryDocumentStore
from internly.workspace import store_path


@pytest.fixture
def json_store(workspace):
    settings = yaml.safe_load((workspace / "settings.yaml").read_text(encoding="utf-8"))
    settings["store_backend"] = "json"
    (workspace / "settings.yaml").write_text(yaml.dump(settings), encoding="utf-8")

    db = MemoryDocumentStore(store_path(workspace))
    db.set("users/u1", {"name": "Ana"})
    db.set("dailyLogs/l1", {"userId": "u1", "entryDate": "2025-01-06", "dailyHours": 4})
    db.set("dailyLogs/l2", {"userId": "u1", "entryDate": "2025-01-07", "dailyHours": 4})
    db.set("notifications/n1", {"userId": "u1", "type": "system"})
    return workspace


def _reopen(workspace):
    return MemoryDocumentStore(store_path(workspace))


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_migrate_dry_run(json_store, capsys):
    assert main(["migrate", "--dry-run"]) == 0
    stats = json.loads(capsys.readouterr().out)
    assert stats["dailyLogs"]["migrated"] == 2
    assert _reopen(json_store).query("users/u1/dailyLogs") == []


def test_migrate(json_store, capsys):
    assert main(["migrate"]) == 0
    stats = json.loads(capsys.readouterr().out)
    assert stats["notifications"] == {"read": 1, "migrated": 1, "skipped": 0}
    assert len(_reopen(json_store).query("users/u1/dailyLogs")) == 2


def test_cleanup(json_store, capsys):
    main(["migrate"])
    capsys.readouterr()

    assert main(["cleanup", "--dry-run"]) == 0
    assert "Would delete 3" in capsys.readouterr().out
    assert main(["cleanup"]) == 0
    assert "Deleted 3" in capsys.readouterr().out

    db = _reopen(json_store)
    assert db.query("dailyLogs") == []
    assert len(db.query("users/u1/dailyLogs")) == 2


def test_verify(json_store, capsys):
    assert main(["verify"]) == 0
    out = capsys.readouterr().out
    assert "Ana (u1): dailyLogs=0" in out
    assert "Flat collections still hold: dailyLogs=2, notifications=1" in out

    main(["migrate"])
    main(["cleanup"])
    capsys.readouterr()
    main(["verify", "--json"])
    report = json.loads(capsys.readouterr().out)
    assert report["users"][0]["counts"]["dailyLogs"] == 2
    assert report["flat"] == {"dailyLogs": 0, "weeklyReports": 0, "notifications": 0}
