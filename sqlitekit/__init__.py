"""sqlitekit: a thin driver over the SQLite C library.

Single source of truth for the package version so that code, tests, and
scripts can import it without duplicating literals. The common entry points
are re-exported here; importing the package does not load the native library.
"""

PACKAGE_VERSION = "0.1.0"  # Keep in sync with pyproject version.

from .status import (StatusCode, Error, SQLiteError, InterfaceError, IntegrityError,  # noqa: E402
                     OperationalError, EncoderError, SavepointError, UnrecoverableError,
                     DoubleFaultError, status_text)
from .config import DriverConfig  # noqa: E402
from .codec import BlobReader, ColumnType  # noqa: E402
from .statement import Statement, ResultColumn, QueryParameter  # noqa: E402
from .connection import MEMORY, OpenFlag, Connection, connect, transient  # noqa: E402
from .transaction import CONTINUE, COMMIT_NOW, Abort, Transaction  # noqa: E402
from .backup import Backup, BackupParameters, ProgressReport, Reporter  # noqa: E402
from .session import EngineLifecycle, session, transient_session, lib_version  # noqa: E402
from .table import Table  # noqa: E402

__all__ = [
    "PACKAGE_VERSION",
    "StatusCode", "Error", "SQLiteError", "InterfaceError", "IntegrityError",
    "OperationalError", "EncoderError", "SavepointError", "UnrecoverableError",
    "DoubleFaultError", "status_text",
    "DriverConfig", "BlobReader", "ColumnType",
    "Statement", "ResultColumn", "QueryParameter",
    "MEMORY", "OpenFlag", "Connection", "connect", "transient",
    "CONTINUE", "COMMIT_NOW", "Abort", "Transaction",
    "Backup", "BackupParameters", "ProgressReport", "Reporter",
    "EngineLifecycle", "session", "transient_session", "lib_version",
    "Table",
]
