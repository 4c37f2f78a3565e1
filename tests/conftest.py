"""Shared test fixtures."""

import pytest

from fieldsync.backend import BackendError


@pytest.fixture(autouse=True)
def temp_data_dir(monkeypatch, tmp_path):
    """Override data directories to use a temp dir for each test."""
    import fieldsync.config as config

    data_dir = tmp_path / "data"
    data_dir.mkdir()

    monkeypatch.setattr(config, "DATA_DIR", data_dir)
    monkeypatch.setattr(config, "DB_PATH", data_dir / "fieldsync.db")
    monkeypatch.setattr(config, "PERMISSIONS_PATH", data_dir / "permissions.yaml")
    monkeypatch.setattr(config, "MONITOR_LOG_FILE", data_dir / "sync_monitor.log")

    # Also patch the db module's reference to DB_PATH
    import fieldsync.db as db_module
    monkeypatch.setattr(db_module, "DB_PATH", data_dir / "fieldsync.db")

    return data_dir


class FakeBackend:
    """In-memory stand-in for the hosted backend that records every call.

    Chamber inserts enforce the project foreign key the way the real
    database does, so an unresolved temporary project id is rejected.
    """

    def __init__(self):
        self.calls = []
        self.tables = {"projects": {}, "chambers": {}}
        self.objects = {}
        self._failures = []
        self._counter = 0

    def fail(self, method, when=lambda *args: True, message="simulated failure"):
        """Make calls to method raise BackendError when when(*args) is true."""
        self._failures.append((method, when, message))

    def _check(self, method, *args):
        for name, when, message in self._failures:
            if name == method and when(*args):
                raise BackendError(message, status_code=500)

    def insert(self, table, row):
        self.calls.append(("insert", table, dict(row)))
        self._check("insert", table, row)
        if table == "chambers" and row.get("project_id") not in self.tables["projects"]:
            raise BackendError(
                'insert or update on table "chambers" violates foreign key constraint',
                status_code=409,
                code="23503",
            )
        self._counter += 1
        new_id = f"{table[:-1]}-{self._counter}"
        self.tables[table][new_id] = {**row, "id": new_id}
        return new_id

    def update(self, table, record_id, patch):
        self.calls.append(("update", table, record_id, dict(patch)))
        self._check("update", table, record_id, patch)
        if record_id not in self.tables[table]:
            raise BackendError(f"Update on {table} matched no row for id {record_id}")
        self.tables[table][record_id].update(patch)

    def query(self, table, filters):
        self.calls.append(("query", table, dict(filters)))
        self._check("query", table, filters)
        for row in self.tables[table].values():
            if all(row.get(k) == v for k, v in filters.items()):
                return {"id": row["id"]}
        return None

    def upload_blob(self, bucket, path, data, content_type):
        self.calls.append(("upload_blob", bucket, path, content_type))
        self._check("upload_blob", bucket, path, data, content_type)
        self.objects[(bucket, path)] = (bytes(data), content_type)
        return f"https://example.supabase.co/storage/v1/object/public/{bucket}/{path}"

    def ping(self):
        return True

    def seed_project(self, project_id, **fields):
        self.tables["projects"][project_id] = {"id": project_id, **fields}

    def seed_chamber(self, chamber_id, **fields):
        self.tables["chambers"][chamber_id] = {"id": chamber_id, **fields}

    def calls_of(self, method):
        return [c for c in self.calls if c[0] == method]


@pytest.fixture
def fake_backend():
    return FakeBackend()
