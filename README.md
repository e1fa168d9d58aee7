# schemamigrate

`schemamigrate` reads versioned migrations from a *source* and applies them to a
*database*. It moves the schema up or down one version at a time. Sources and
databases are plain driver objects that do only simple work. The `Migrate` class
in `schemamigrate.migrate` decides what to run and in what order.

The package has no dependencies beyond the standard library.

## Migration files

A source holds files with names like these:

```
1_create_users.up.sql
1_create_users.down.sql
2_add_email.up.sql
2_add_email.down.sql
```

- The leading number is the version.
- The text between the first `_` and the direction is the identifier.
- The direction is `up` or `down`.
- Anything after the direction is ignored.

A version does not need both directions. When the needed direction is missing,
the version is still recorded, but no statements are run for it.

`schemamigrate.source.migrations` provides these names:

- `parse(name)` turns a file name into a `Migration`. The `Migration` has the
  fields `version`, `direction`, `identifier` and `raw`. `parse` raises
  `ParseError` for names that do not match.
- `Migrations` keeps the parsed entries in version order:
  - `append(m)` returns `False` when that version and direction are already
    present.
  - `first()`, `prev(version)` and `next(version)` return a version, or `None`.
  - `up(version)` and `down(version)` return the entry, or `None`.
- `DuplicateMigrationError` is raised by the directory-backed sources when two
  files share a version and a direction.

## Sources

Every source follows the `SourceDriver` interface in
`schemamigrate.source.driver`. It has these methods:

- `open(url)`
- `close()`
- `first()`
- `prev(version)`
- `next(version)`
- `read_up(version)`
- `read_down(version)`

The two read methods return a binary file object and an identifier. A missing
version or file is reported with `FileNotFoundError`. Drivers are also context
managers, and leaving the `with` block closes the driver.

The package provides these sources:

- **`schemamigrate.source.file.FileSource`**
  - Reads a local directory.
  - Open it with a URL such as `file:///srv/app/migrations` or
    `file://./migrations`. A relative path is made absolute.
  - A bare `file://` opens the current working directory.
  - `parse_url(url)` returns the directory that a URL points at.
- **`schemamigrate.source.iofs.new(fs, path)`**
  - Reads migrations from `path` inside a directory-like tree, such as a
    `pathlib.Path` or a `zipfile.Path`.
  - Such a driver cannot be opened from a URL.
  - `PartialDriver` is the base to subclass for other tree-backed sources. It
    provides `load(fs, path)`, and the subclass supplies `open`.
- **`schemamigrate.source.bindata`**
  - `with_instance(resource(names, asset_func))` serves migrations from
    in-memory assets.
  - `asset_func(name)` must return the asset's bytes.
- **`schemamigrate.source.stub.StubSource`**
  - An in-memory source for tests.
  - Its `migrations` attribute is a `Migrations` that you fill yourself.
  - Each body is the entry's identifier, encoded.

Importing `schemamigrate.source.file`, `schemamigrate.source.stub` or
`schemamigrate.source.bindata` registers the driver under the scheme `file`,
`stub` or `bindata`. The `bindata` driver cannot be opened from a URL. The
registry is used through three functions:

- `register(name, driver)` adds a driver under a scheme.
- `open_source(url)` opens the driver registered for the URL's scheme.
- `list_drivers()` returns the registered scheme names.

## Databases

A database driver subclasses `schemamigrate.migrate.DatabaseDriver` and
implements these methods:

- `lock()`
- `unlock()`
- `run(body)`
- `set_version(version, dirty)`
- `version()`, which returns `(version, dirty)` and uses `NIL_VERSION` (-1)
  when nothing has been applied
- `drop()`
- `close()`

A minimal in-memory driver:

```python
from schemamigrate.migrate import NIL_VERSION, DatabaseDriver


class MemoryDatabase(DatabaseDriver):
    def __init__(self):
        self.current, self.dirty = NIL_VERSION, False
        self.locked = False
        self.executed = []

    def close(self):
        pass

    def lock(self):
        if self.locked:
            raise RuntimeError("already locked")
        self.locked = True

    def unlock(self):
        self.locked = False

    def run(self, migration):
        self.executed.append(migration.read().decode())

    def set_version(self, version, dirty):
        self.current, self.dirty = version, dirty

    def version(self):
        return self.current, self.dirty

    def drop(self):
        self.executed.clear()
        self.current, self.dirty = NIL_VERSION, False
```

## Usage

```python
from schemamigrate.errors import NoChangeError
from schemamigrate.migrate import new_with_instance
from schemamigrate.source.file import FileSource

source = FileSource().open("file://./migrations")

with new_with_instance("file", source, "memory", MemoryDatabase()) as m:
    try:
        m.up()                 # apply every pending up migration
    except NoChangeError:
        pass
    m.steps(-1)                # undo one migration
    m.migrate(2)               # go up or down to version 2
    version, dirty = m.version()
```

`new_with_database_instance(source_url, database_name, database)` opens the
source through the registry instead. For example, after
`import schemamigrate.source.file`, the source URL can be
`"file://./migrations"`.

### Operations on `Migrate`

| Call | What it does |
| --- | --- |
| `up()` / `down()` | Apply every up or down migration from the current version. |
| `steps(n)` | Apply `n` migrations: up when `n` is positive, down when it is negative. |
| `migrate(version)` | Move to `version`. The version must exist in the source, or `FileNotFoundError` is raised. |
| `force(version)` | Record `version` as current and clean without running anything. `-1` means no version. |
| `drop()` | Delete everything in the database. |
| `run(*migrations)` | Run the given `schemamigrate.migration.Migration` objects as they are, for example ones built with `new_migration(body, identifier, version, target_version)`. |
| `version()` | Return `(version, dirty)`. |
| `stop()` | Ask a running migration to halt at the next safe point. |
| `close()` | Close both the source and the database. Leaving a `with` block does the same. |

Every change takes the database lock first. It waits at most `lock_timeout`
seconds, 15 by default. The version is marked dirty while a migration runs and
clean once the migration has finished.

To see progress, set `m.log` to a `logging.Logger`:

- At DEBUG level each step is logged with its read and run times.
- Otherwise one line is logged at INFO level per applied migration.

`schemamigrate.util.filter_custom_query(url)` removes query parameters whose
names start with `x-`. The remaining parameters come back sorted by name.

## Errors

`schemamigrate.errors` defines these errors:

- `NoChangeError`: there is nothing to do.
- `NilVersionError`: no migration has been applied yet.
- `DirtyError`: an earlier migration failed part-way. Fix the database, then
  call `force`.
- `ShortLimitError`: fewer migrations were available than `steps` asked for.
  The ones that were available have been applied.
- `LockedError`: the lock is already held by this `Migrate`.
- `LockTimeoutError`: the lock could not be taken in time.
- `InvalidVersionError`: `force` was given a version below -1.
- `MultiError`: several errors were raised together. For example, a failed
  migration followed by a failed unlock.

All of these derive from `MigrateError`. When a version or file is missing from
the source, `FileNotFoundError` is raised instead.

## What this package does not include

- **No database drivers.** You supply a `DatabaseDriver` for your database.
  There is no way to open a database from a URL.
- **No command-line tool.** Migrations are run from Python code.
- **Local sources only.** The sources read local directories, directory-like
  trees and in-memory data. There is no source for remote storage or
  code-hosting services.