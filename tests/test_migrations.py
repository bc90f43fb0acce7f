import shutil
import sqlite3

import pytest

from migrations.runner import VERSIONS_DIR, MigrationRunner, load_steps, split_statements
from storage.errors import MigrationError


def _columns(db_path, table="metrics"):
    with sqlite3.connect(db_path) as conn:
        return [r[1] for r in conn.execute(f"PRAGMA table_info({table})")]


def _indexes(db_path):
    with sqlite3.connect(db_path) as conn:
        rows = conn.execute(
            "SELECT name, sql FROM sqlite_master WHERE type = 'index' AND tbl_name = 'metrics'"
        ).fetchall()
    return dict(rows)


def _schema(db_path):
    with sqlite3.connect(db_path) as conn:
        return conn.execute(
            "SELECT type, name, sql FROM sqlite_master WHERE name NOT LIKE 'sqlite_%' ORDER BY name"
        ).fetchall()


def test_steps_are_ordered_by_name():
    names = [s.name for s in load_steps()]
    assert names == sorted(names)
    assert names == [
        "20240101000000_create_metrics",
        "20240102000000_add_namespaces",
        "20240103000000_remove_owner_token",
    ]


def test_empty_store_reaches_terminal_schema(db_path):
    applied = MigrationRunner(db_path).run()

    assert len(applied) == 3
    assert _columns(db_path) == ["namespace", "id", "value", "timestamp"]
    indexes = _indexes(db_path)
    # no primary key autoindex, no owner index
    assert list(indexes) == ["idx_metrics_namespace_id_timestamp"]
    assert "(namespace, id, timestamp)" in indexes["idx_metrics_namespace_id_timestamp"]


def test_database_is_left_in_wal_mode(db_path):
    MigrationRunner(db_path).run()
    with sqlite3.connect(db_path) as conn:
        assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"


def test_second_run_is_a_noop(db_path):
    runner = MigrationRunner(db_path)
    runner.run()
    first = _schema(db_path)

    assert runner.run() == []
    assert MigrationRunner(db_path).run() == []
    assert _schema(db_path) == first
    assert runner.pending() == []
    assert [row["name"] for row in runner.applied()] == [s.name for s in load_steps()]


def test_rows_survive_the_evolution(tmp_path, db_path):
    baseline_only = tmp_path / "steps"
    baseline_only.mkdir()
    shutil.copy(VERSIONS_DIR / "20240101000000_create_metrics.sql", baseline_only)

    MigrationRunner(db_path, baseline_only).run()
    with sqlite3.connect(db_path) as conn:
        conn.execute("INSERT INTO metrics (id, value, timestamp) VALUES ('build', 1.5, 100)")
        conn.execute("INSERT INTO metrics (id, value, timestamp) VALUES ('build', 2.5, 200)")

    applied = MigrationRunner(db_path).run()
    assert applied == ["20240102000000_add_namespaces", "20240103000000_remove_owner_token"]

    with sqlite3.connect(db_path) as conn:
        rows = conn.execute(
            "SELECT namespace, id, value, timestamp FROM metrics ORDER BY timestamp"
        ).fetchall()
    assert rows == [("", "build", 1.5, 100), ("", "build", 2.5, 200)]


def test_terminal_schema_allows_duplicate_tuples(db_path):
    MigrationRunner(db_path).run()
    with sqlite3.connect(db_path) as conn:
        for value in (5.0, 7.0):
            conn.execute(
                "INSERT INTO metrics (namespace, id, value, timestamp) VALUES ('deploy', 'x', ?, 10)",
                (value,),
            )
        assert conn.execute("SELECT COUNT(*) FROM metrics").fetchone()[0] == 2


def test_failed_step_rolls_back_completely(tmp_path, db_path):
    steps = tmp_path / "steps"
    steps.mkdir()
    (steps / "20250101000000_good.sql").write_text("CREATE TABLE a (x INTEGER);\n")
    (steps / "20250102000000_bad.sql").write_text(
        "CREATE TABLE b (x INTEGER);\nINSERT INTO missing_table VALUES (1);\n"
    )

    runner = MigrationRunner(db_path, steps)
    with pytest.raises(MigrationError, match="20250102000000_bad"):
        runner.run()

    with sqlite3.connect(db_path) as conn:
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    assert "a" in tables
    assert "b" not in tables
    assert [row["name"] for row in runner.applied()] == ["20250101000000_good"]


def test_modified_step_is_rejected(tmp_path, db_path):
    steps = tmp_path / "steps"
    steps.mkdir()
    step = steps / "20250101000000_create.sql"
    step.write_text("CREATE TABLE a (x INTEGER);\n")
    MigrationRunner(db_path, steps).run()

    step.write_text("CREATE TABLE a (x INTEGER, y INTEGER);\n")
    with pytest.raises(MigrationError, match="modified"):
        MigrationRunner(db_path, steps).run()


def test_unknown_recorded_step_is_rejected(tmp_path, db_path):
    steps = tmp_path / "steps"
    steps.mkdir()
    step = steps / "20250101000000_create.sql"
    step.write_text("CREATE TABLE a (x INTEGER);\n")
    MigrationRunner(db_path, steps).run()

    step.unlink()
    with pytest.raises(MigrationError, match="unknown"):
        MigrationRunner(db_path, steps).run()


def test_non_migration_files_are_ignored(tmp_path):
    steps = tmp_path / "steps"
    steps.mkdir()
    (steps / "README.sql").write_text("not sql at all")
    (steps / "20250101000000_create.sql").write_text("CREATE TABLE a (x INTEGER);")
    assert [s.name for s in load_steps(steps)] == ["20250101000000_create"]


def test_split_statements_skips_comments():
    script = "-- header; with a semicolon\nCREATE TABLE a (x);\n\n-- trailing note\n"
    assert split_statements(script) == ["-- header; with a semicolon\nCREATE TABLE a (x);"]


def test_split_statements_keeps_unterminated_tail():
    assert split_statements("CREATE TABLE a (x);\nCREATE TABLE b (y)") == [
        "CREATE TABLE a (x);",
        "CREATE TABLE b (y)",
    ]


def test_migrate_script_reports_applied_steps(db_path):
    from scripts.migrate import migrate

    assert migrate(db_path) == [s.name for s in load_steps()]
    assert migrate(db_path) == []
