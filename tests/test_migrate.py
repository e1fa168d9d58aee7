import logging
import threading

import pytest

import schemamigrate.source.file  # noqa: F401  registers "file"
from schemamigrate.errors import (
    DirtyError,
    InvalidVersionError,
    LockedError,
    LockTimeoutError,
    MultiError,
    NilVersionError,
    NoChangeError,
    ShortLimitError,
)
from schemamigrate.migrate import (
    NIL_VERSION,
    DatabaseDriver,
    Migrate,
    new_with_database_instance,
    new_with_instance,
)
from schemamigrate.migration import new_migration
from schemamigrate.source.file import FileSource
from schemamigrate.source.migrations import Direction
from schemamigrate.source.migrations import Migration as SourceMigration
from schemamigrate.source.migrations import Migrations
from schemamigrate.source.stub import StubSource


class StubDatabase(DatabaseDriver):
    def __init__(self):
        self.current = NIL_VERSION
        self.dirty = False
        self.locked = False
        self.closed = False
        self.sequence = []

    def close(self):
        self.closed = True

    def lock(self):
        if self.locked:
            raise RuntimeError("already locked")
        self.locked = True

    def unlock(self):
        self.locked = False

    def run(self, migration):
        self.sequence.append(migration.read().decode())

    def set_version(self, version, dirty):
        self.current = version
        self.dirty = dirty

    def version(self):
        return self.current, self.dirty

    def drop(self):
        self.sequence.append("DROP")


class FailingUnlockDatabase(StubDatabase):
    def unlock(self):
        raise RuntimeError("unlock failed")


class FailingLockDatabase(StubDatabase):
    def lock(self):
        raise RuntimeError("lock failed")


class BlockingLockDatabase(StubDatabase):
    def __init__(self):
        super().__init__()
        self.release = threading.Event()

    def lock(self):
        self.release.wait(5)


#  |  1  |  -  |  3  |  4  |  5  |  -  |  7  |
#  | u d |  -  | u   | u d |   d |  -  | u d |
def _stub_migrations():
    ms = Migrations()
    for version, direction, identifier in [
        (1, Direction.UP, "CREATE 1"),
        (1, Direction.DOWN, "DROP 1"),
        (3, Direction.UP, "CREATE 3"),
        (4, Direction.UP, "CREATE 4"),
        (4, Direction.DOWN, "DROP 4"),
        (5, Direction.DOWN, "DROP 5"),
        (7, Direction.UP, "CREATE 7"),
        (7, Direction.DOWN, "DROP 7"),
    ]:
        ms.append(
            SourceMigration(version=version, direction=direction, identifier=identifier)
        )
    return ms


def _make(db=None):
    db = db if db is not None else StubDatabase()
    source = StubSource(url="stub://", migrations=_stub_migrations())
    return new_with_instance("stub", source, "stub", db), db


def _outcome(call):
    try:
        call()
    except Exception as err:  # noqa: BLE001
        return err
    return None


def test_new_with_database_instance():
    db = StubDatabase()
    m = new_with_database_instance("stub://", "stub", db)
    assert m.source_name == "stub"
    assert isinstance(m.source, StubSource)
    assert m.database_name == "stub"
    assert m.database is db


def test_new_with_database_instance_rejects_url_without_scheme():
    with pytest.raises(ValueError):
        new_with_database_instance("no-scheme-here", "stub", StubDatabase())


def test_new_with_instance():
    source = StubSource()
    db = StubDatabase()
    m = new_with_instance("stub", source, "stub", db)
    assert m.source_name == "stub"
    assert m.source is source
    assert m.database_name == "stub"
    assert m.database is db


def test_close_closes_database():
    m, db = _make()
    m.close()
    assert db.closed is True


def test_migrate_sequence():
    m, db = _make()
    cases = [
        (0, FileNotFoundError, None, []),
        (1, None, 1, ["CREATE 1"]),
        (2, FileNotFoundError, None, []),
        (3, None, 3, ["CREATE 3"]),
        (4, None, 4, ["CREATE 4"]),
        (5, None, 5, []),
        (6, FileNotFoundError, None, []),
        (7, None, 7, ["CREATE 7"]),
        (8, FileNotFoundError, None, []),
        (6, FileNotFoundError, None, []),
        (5, None, 5, ["DROP 7"]),
        (4, None, 4, ["DROP 5"]),
        (3, None, 3, ["DROP 4"]),
        (2, FileNotFoundError, None, []),
        (1, None, 1, []),
        (0, FileNotFoundError, None, []),
        (7, None, 7, ["CREATE 3", "CREATE 4", "CREATE 7"]),
        (1, None, 1, ["DROP 7", "DROP 5", "DROP 4"]),
        (1, NoChangeError, None, []),
    ]
    expected = []
    for index, (version, error, expect_version, added) in enumerate(cases):
        err = _outcome(lambda: m.migrate(version))
        if error is None:
            assert err is None, index
            assert m.version()[0] == expect_version, index
        else:
            assert isinstance(err, error), index
        expected.extend(added)
        assert db.sequence == expected, index


def test_migrate_dirty():
    m, db = _make()
    db.set_version(0, True)
    with pytest.raises(DirtyError) as exc:
        m.migrate(1)
    assert exc.value.version == 0


def test_steps_sequence():
    m, db = _make()
    cases = [
        (0, NoChangeError, None, []),
        (-1, FileNotFoundError, None, []),
        (1, None, 1, ["CREATE 1"]),
        (1, None, 3, ["CREATE 3"]),
        (1, None, 4, ["CREATE 4"]),
        (1, None, 5, []),
        (1, None, 7, ["CREATE 7"]),
        (1, FileNotFoundError, None, []),
        (-1, None, 5, ["DROP 7"]),
        (-1, None, 4, ["DROP 5"]),
        (-1, None, 3, ["DROP 4"]),
        (-1, None, 1, []),
        (-1, None, -1, ["DROP 1"]),
        (4, None, 5, ["CREATE 1", "CREATE 3", "CREATE 4"]),
        (2, ShortLimitError(1), None, ["CREATE 7"]),
        (-4, None, 1, ["DROP 7", "DROP 5", "DROP 4"]),
        (-2, ShortLimitError(1), None, ["DROP 1"]),
    ]
    expected = []
    for index, (n, error, expect_version, added) in enumerate(cases):
        err = _outcome(lambda: m.steps(n))
        if error is None:
            assert err is None, index
            if expect_version == -1:
                with pytest.raises(NilVersionError):
                    m.version()
            else:
                assert m.version()[0] == expect_version, index
        elif isinstance(error, ShortLimitError):
            assert err == error, index
        else:
            assert isinstance(err, error), index
        expected.extend(added)
        assert db.sequence == expected, index


def test_steps_short_limit_leaves_last_applied_version():
    m, _ = _make()
    m.steps(4)
    with pytest.raises(ShortLimitError) as exc:
        m.steps(2)
    assert exc.value.short == 1
    assert m.version() == (7, False)


def test_steps_dirty():
    m, db = _make()
    db.set_version(0, True)
    with pytest.raises(DirtyError):
        m.steps(1)


def test_up_and_down():
    m, db = _make()
    m.up()
    expected = ["CREATE 1", "CREATE 3", "CREATE 4", "CREATE 7"]
    assert db.sequence == expected

    m.down()
    expected += ["DROP 7", "DROP 5", "DROP 4", "DROP 1"]
    assert db.sequence == expected

    m.steps(1)
    expected += ["CREATE 1"]
    assert db.sequence == expected

    m.up()
    expected += ["CREATE 3", "CREATE 4", "CREATE 7"]
    assert db.sequence == expected

    m.steps(-1)
    expected += ["DROP 7"]
    assert db.sequence == expected

    m.down()
    expected += ["DROP 5", "DROP 4", "DROP 1"]
    assert db.sequence == expected


def test_up_dirty():
    m, db = _make()
    db.set_version(0, True)
    with pytest.raises(DirtyError):
        m.up()


def test_down_dirty():
    m, db = _make()
    db.set_version(0, True)
    with pytest.raises(DirtyError):
        m.down()


def test_up_with_nothing_left_is_no_change():
    m, _ = _make()
    m.up()
    with pytest.raises(NoChangeError):
        m.up()


def test_drop():
    m, db = _make()
    m.drop()
    assert db.sequence[-1] == "DROP"


def test_version():
    m, db = _make()
    with pytest.raises(NilVersionError):
        m.version()
    db.set_version(1, False)
    assert m.version() == (1, False)


def test_run():
    m, _ = _make()
    m.run(new_migration(None, "", 1, 2))
    assert m.version() == (2, False)


def test_run_without_migrations_is_no_change():
    m, _ = _make()
    with pytest.raises(NoChangeError):
        m.run()


def test_run_dirty():
    m, db = _make()
    db.set_version(0, True)
    with pytest.raises(DirtyError):
        m.run(new_migration(None, "", 1, 2))


def test_force():
    m, _ = _make()
    m.force(7)
    assert m.version() == (7, False)


def test_force_dirty():
    m, db = _make()
    db.set_version(0, True)
    m.force(1)
    assert m.version() == (1, False)


def test_force_invalid_version():
    m, _ = _make()
    with pytest.raises(InvalidVersionError):
        m.force(-2)


def test_lock_twice_is_locked():
    m, _ = _make()
    m._lock()
    with pytest.raises(LockedError):
        m._lock()


def test_lock_released_after_operation():
    m, db = _make()
    m.up()
    assert db.locked is False
    m.down()
    assert db.sequence[-1] == "DROP 1"


def test_lock_timeout():
    db = BlockingLockDatabase()
    m, _ = _make(db)
    m.lock_timeout = 0.05
    try:
        with pytest.raises(LockTimeoutError):
            m.up()
    finally:
        db.release.set()
    assert db.sequence == []


def test_lock_failure_propagates():
    m, db = _make(FailingLockDatabase())
    with pytest.raises(RuntimeError, match="lock failed"):
        m.up()
    assert db.sequence == []


def test_unlock_failure_is_combined_with_previous_error():
    m, db = _make(FailingUnlockDatabase())
    db.set_version(0, True)
    with pytest.raises(MultiError) as exc:
        m.up()
    assert isinstance(exc.value.errors[0], DirtyError)
    assert str(exc.value.errors[1]) == "unlock failed"


def test_stop_prevents_further_migrations():
    m, db = _make()
    m.stop()
    m.up()
    assert db.sequence == []
    with pytest.raises(NilVersionError):
        m.version()


def test_logging_reports_applied_migrations(caplog):
    m, _ = _make()
    logger = logging.getLogger("tests.schemamigrate.migrate")
    caplog.set_level(logging.INFO, logger=logger.name)
    m.log = logger
    m.steps(1)
    messages = [record.getMessage() for record in caplog.records]
    assert any(message.startswith("1/u 1.up.stub (") for message in messages)


def test_file_source_end_to_end(tmp_path):
    (tmp_path / "1_users.up.sql").write_text("CREATE users")
    (tmp_path / "1_users.down.sql").write_text("DROP users")
    (tmp_path / "2_posts.up.sql").write_text("CREATE posts")
    (tmp_path / "2_posts.down.sql").write_text("DROP posts")
    db = StubDatabase()
    m = new_with_database_instance("file://" + str(tmp_path), "stub", db)
    assert m.source_name == "file"
    assert isinstance(m.source, FileSource)
    m.up()
    assert db.sequence == ["CREATE users", "CREATE posts"]
    assert m.version() == (2, False)
    m.down()
    assert db.sequence[2:] == ["DROP posts", "DROP users"]
    with pytest.raises(NilVersionError):
        m.version()