"""Tests for CLI commands."""

import json

import pytest

from docsearch import cli


@pytest.fixture
def cli_service(service, monkeypatch):
    """Route every CLI invocation to the same in-memory service."""
    for name in ("DOCSEARCH_CONFIG", "DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("VECTOR_BACKEND", "memory")
    monkeypatch.setattr(cli, "create_service", lambda config, show_progress=False: service)
    return service


def _run(capsys, *argv):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(list(argv))
    captured = capsys.readouterr()
    return exc_info.value.code, captured.out, captured.err


class TestIndexCommand:
    def test_index_directory(self, cli_service, docs_dir, capsys):
        code, out, err = _run(capsys, "index", str(docs_dir))

        report = json.loads(out)
        assert code == 0
        assert report["indexed"] == 3
        assert len(report["results"]) == 3
        assert "Indexed: 3/3" in err

    def test_index_reports_failures(self, cli_service, docs_dir, capsys):
        (docs_dir / "broken.json").write_text("{oops", encoding="utf-8")

        code, out, err = _run(capsys, "index", str(docs_dir))

        assert code == 1
        assert json.loads(out)["failed"] == 1
        assert "broken.json" in err

    def test_index_missing_path(self, cli_service, tmp_path, capsys):
        code, out, _ = _run(capsys, "index", str(tmp_path / "missing"))

        assert code == 1
        assert json.loads(out)["error"] == "InvalidInputError"


class TestQueryCommands:
    def test_search(self, cli_service, docs_dir, capsys):
        _run(capsys, "index", str(docs_dir))

        code, out, _ = _run(capsys, "search", "Fitzer", "--limit", "2")

        data = json.loads(out)
        assert code == 0
        assert data["query"] == "Fitzer"
        assert 1 <= data["count"] <= 2

    def test_empty_search_fails(self, cli_service, capsys):
        code, out, _ = _run(capsys, "search", "  ")

        assert code == 1
        assert json.loads(out)["error"] == "InvalidInputError"

    def test_context(self, cli_service, docs_dir, capsys):
        _run(capsys, "index", str(docs_dir))

        code, out, _ = _run(capsys, "context", "Fitzer", "--threshold", "0.1")

        data = json.loads(out)
        assert code == 0
        assert data["context"].startswith("[1] ")
        assert data["citations"]


class TestDiagnosticCommands:
    def test_stats(self, cli_service, docs_dir, capsys):
        _run(capsys, "index", str(docs_dir))

        code, out, _ = _run(capsys, "stats")

        assert code == 0
        assert json.loads(out)["total_documents"] == 3

    def test_test_embedding(self, cli_service, capsys):
        code, out, _ = _run(capsys, "test-embedding")

        assert code == 0
        assert json.loads(out)["ok"] is True

    def test_remove_missing_document(self, cli_service, capsys):
        code, out, _ = _run(capsys, "remove", "missing")

        assert code == 1
        assert json.loads(out)["error"] == "NotFoundError"


class TestRebuildCommands:
    def test_clear(self, cli_service, docs_dir, capsys):
        _run(capsys, "index", str(docs_dir))

        code, out, err = _run(capsys, "clear")

        assert code == 0
        assert json.loads(out)["documents_deleted"] == 3
        assert "Index cleared" in err

    def test_clear_reset(self, cli_service, docs_dir, capsys):
        _run(capsys, "index", str(docs_dir))

        code, out, err = _run(capsys, "clear", "--reset")

        assert code == 0
        assert json.loads(out)["reset"] is True
        assert "Index reset" in err
        _, out, _ = _run(capsys, "stats")
        assert json.loads(out)["total_documents"] == 0

    def test_reindex(self, cli_service, docs_dir, capsys):
        _run(capsys, "index", str(docs_dir))

        code, out, err = _run(capsys, "reindex", str(docs_dir))

        report = json.loads(out)
        assert code == 0
        assert report["indexed"] == 3
        assert report["cleared"]["documents_deleted"] == 3
        assert "Cleared 3 documents" in err


class RecordingWatcher:
    """Stands in for DirectoryWatcher and returns right away."""

    instances = []

    def __init__(self, service, root):
        self.root = root
        self.initial_scan = None
        RecordingWatcher.instances.append(self)

    async def run(self, stop_event=None, initial_scan=True):
        self.initial_scan = initial_scan


class TestWatchCommand:
    @pytest.fixture(autouse=True)
    def recording_watcher(self, monkeypatch):
        RecordingWatcher.instances = []
        monkeypatch.setattr(cli, "DirectoryWatcher", RecordingWatcher)

    def test_watch_given_directory(self, cli_service, docs_dir, capsys):
        code, _, err = _run(capsys, "watch", str(docs_dir), "--no-initial-scan")

        watcher = RecordingWatcher.instances[0]
        assert code == 0
        assert watcher.root == str(docs_dir)
        assert watcher.initial_scan is False
        assert "Watching" in err

    def test_watch_defaults_to_docs_dir(self, cli_service, capsys):
        code, _, _ = _run(capsys, "watch")

        assert code == 0
        assert RecordingWatcher.instances[0].root == cli_service.docs_dir
        assert RecordingWatcher.instances[0].initial_scan is True

    def test_interrupt_exits_cleanly(self, cli_service, monkeypatch, capsys):
        async def interrupted(self, stop_event=None, initial_scan=True):
            raise KeyboardInterrupt

        monkeypatch.setattr(RecordingWatcher, "run", interrupted)

        code, _, err = _run(capsys, "watch")

        assert code == 130
        assert "Stopped" in err


def test_postgres_requires_database_url(monkeypatch, capsys):
    for name in ("DOCSEARCH_CONFIG", "DATABASE_URL", "POSTGRES_HOST", "POSTGRES_USER", "POSTGRES_DB"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("VECTOR_BACKEND", "postgres")

    code, _, err = _run(capsys, "stats")

    assert code == 1
    assert "DATABASE_URL not set" in err


def test_command_is_required(capsys):
    with pytest.raises(SystemExit) as exc_info:
        cli.main([])
    assert exc_info.value.code == 2
