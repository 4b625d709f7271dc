import logging
import shutil
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from flask import Flask

from infrastructure.database.ops.alerts import AlertOperations
from infrastructure.database.ops.control import ControlConfigOperations
from infrastructure.database.ops.devices import DeviceOperations
from infrastructure.database.ops.readings import ReadingOperations

logger = logging.getLogger(__name__)


class SQLiteDatabaseHandler(
    DeviceOperations,
    ControlConfigOperations,
    AlertOperations,
    ReadingOperations,
):
    """Thread-safe SQLite handler decoupled from Flask globals.

    Each thread (pollers, the queue worker, HTTP requests) gets its own
    connection. With ``:memory:`` that also means its own database, so
    multi-threaded callers need a file path.
    """

    def __init__(self, database_path: str) -> None:
        self._database_path = database_path
        self._local = threading.local()

        if database_path != ":memory:":
            db_path = Path(database_path)
            if not db_path.parent.exists():
                db_path.parent.mkdir(parents=True, exist_ok=True)
                logger.info("Created database directory: %s", db_path.parent)

    # --- Lifecycle ------------------------------------------------------------
    def init_app(self, app: Flask | None = None) -> None:
        if app is not None:
            app.teardown_appcontext(self.close_db)
        self.create_tables()

    def get_db(self) -> sqlite3.Connection:
        connection: Optional[sqlite3.Connection] = getattr(self._local, "connection", None)
        if connection is None:
            try:
                connection = self._open_connection()
            except sqlite3.DatabaseError as exc:
                if self._is_corruption_error(exc):
                    logger.error("Database appears corrupt (%s). Recreating a fresh database.", exc)
                    self._quarantine_corrupt_db()
                    connection = self._open_connection()
                else:
                    raise
            self._local.connection = connection
        return connection

    def _open_connection(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._database_path, check_same_thread=False, timeout=10)
        try:
            connection.row_factory = sqlite3.Row
            self._configure_connection(connection)
            return connection
        except Exception:
            connection.close()
            raise

    def _is_corruption_error(self, exc: sqlite3.Error) -> bool:
        message = str(exc).lower()
        return "malformed" in message or "not a database" in message

    def _quarantine_corrupt_db(self) -> Optional[Path]:
        db_path = Path(self._database_path)
        if not db_path.exists():
            return None

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        quarantine_dir = db_path.parent / "corrupt"
        quarantine_dir.mkdir(parents=True, exist_ok=True)
        quarantined = quarantine_dir / f"{db_path.stem}_corrupt_{timestamp}{db_path.suffix or '.db'}"
        try:
            shutil.move(str(db_path), str(quarantined))
            logger.warning("Quarantined corrupt database to %s", quarantined)
            return quarantined
        except OSError as exc:
            logger.error("Failed to quarantine corrupt database %s: %s", db_path, exc)
            return None

    def _configure_connection(self, connection: sqlite3.Connection) -> None:
        """WAL lets the HTTP thread read while pollers write."""
        if self._database_path != ":memory:":
            connection.execute("PRAGMA journal_mode=WAL")
        connection.execute("PRAGMA synchronous=NORMAL")
        connection.execute("PRAGMA temp_store=MEMORY")
        connection.commit()

    def close_db(self, _e: Optional[BaseException] = None) -> None:
        connection: Optional[sqlite3.Connection] = getattr(self._local, "connection", None)
        if connection is not None:
            connection.close()
            delattr(self._local, "connection")

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self.get_db()
        try:
            yield conn
        finally:
            conn.commit()

    # --- Schema ----------------------------------------------------------------
    def create_tables(self) -> None:
        """Creates the necessary tables in the database if they do not already exist."""
        with self.connection() as db:
            db.executescript(
                """
                CREATE TABLE IF NOT EXISTS Device (
                    device_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    device_name TEXT NOT NULL,
                    device_type TEXT NOT NULL,
                    pasture_id INTEGER,
                    batch_id INTEGER,
                    command TEXT,
                    command_on TEXT,
                    command_off TEXT,
                    is_controllable INTEGER NOT NULL DEFAULT 0,
                    control_status TEXT DEFAULT '0',
                    status TEXT DEFAULT '0',
                    last_online_time TEXT,
                    create_time TEXT,
                    update_time TEXT
                );

                CREATE TABLE IF NOT EXISTS DeviceMqttConfig (
                    config_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    device_id INTEGER NOT NULL UNIQUE,
                    topic TEXT NOT NULL,
                    qos INTEGER NOT NULL DEFAULT 0,
                    enabled INTEGER NOT NULL DEFAULT 1,
                    FOREIGN KEY (device_id) REFERENCES Device(device_id) ON DELETE CASCADE
                );

                CREATE TABLE IF NOT EXISTS ThresholdConfig (
                    threshold_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    device_id INTEGER NOT NULL,
                    device_type TEXT,
                    param_name TEXT NOT NULL,
                    min_value REAL,
                    max_value REAL,
                    unit TEXT,
                    enabled INTEGER NOT NULL DEFAULT 1
                );
                CREATE INDEX IF NOT EXISTS idx_threshold_device_param
                    ON ThresholdConfig (device_id, param_name);

                CREATE TABLE IF NOT EXISTS AutoControlStrategy (
                    strategy_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    pasture_id INTEGER,
                    batch_id INTEGER,
                    device_id INTEGER NOT NULL,
                    monitor_param TEXT NOT NULL,
                    operator TEXT NOT NULL,
                    condition_value TEXT NOT NULL,
                    action TEXT NOT NULL,
                    execute_duration REAL,
                    enabled INTEGER NOT NULL DEFAULT 1,
                    description TEXT
                );

                CREATE TABLE IF NOT EXISTS SensorAlert (
                    alert_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    device_id INTEGER NOT NULL,
                    device_name TEXT,
                    device_type TEXT,
                    pasture_id INTEGER,
                    batch_id INTEGER,
                    param_name TEXT NOT NULL,
                    param_value REAL,
                    threshold_min REAL,
                    threshold_max REAL,
                    alert_type TEXT NOT NULL,
                    alert_message TEXT,
                    alert_level INTEGER NOT NULL DEFAULT 0,
                    status INTEGER NOT NULL DEFAULT 0,
                    alert_time TEXT NOT NULL,
                    create_time TEXT,
                    update_time TEXT
                );
                CREATE INDEX IF NOT EXISTS idx_sensor_alert_lookup
                    ON SensorAlert (device_id, param_name, alert_type, alert_time);

                CREATE TABLE IF NOT EXISTS WeatherData (
                    data_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    device_id INTEGER NOT NULL,
                    device_name TEXT,
                    pasture_id INTEGER,
                    batch_id INTEGER,
                    temperature REAL,
                    humidity REAL,
                    noise REAL,
                    pm25 INTEGER,
                    pm10 INTEGER,
                    light_intensity INTEGER,
                    wind_speed REAL,
                    wind_direction TEXT,
                    direction_angle INTEGER,
                    rainfall REAL,
                    air_pressure REAL,
                    collect_time TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS WaterQualityData (
                    data_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    device_id INTEGER NOT NULL,
                    device_name TEXT,
                    pasture_id INTEGER,
                    batch_id INTEGER,
                    water_temperature REAL,
                    ph_value REAL,
                    dissolved_oxygen REAL,
                    ammonia_nitrogen REAL,
                    conductivity REAL,
                    collect_time TEXT NOT NULL
                );
                """
            )
        logger.info("Database tables ensured at %s", self._database_path)
