import json
import os
import sqlite3
from typing import Iterable, List

try:
    import psycopg2
    import psycopg2.extras
except ImportError:  # pragma: no cover - optional dependency for postgres
    psycopg2 = None

from flask import current_app, g

from ido_extractor.domain.defaults import DEFAULT_GLOBAL_CONFIG, DEFAULT_JOB


class Database:
    def __init__(self, backend: str, connection):
        self.backend = backend
        self._conn = connection

    def execute(self, sql: str, params: Iterable | None = None):
        if self.backend == "postgres":
            cursor = self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            if params:
                sql = _convert_qmark_to_pg(sql)
                cursor.execute(sql, list(params))
            else:
                cursor.execute(sql)
            return cursor
        return self._conn.execute(sql, params or ())

    def executescript(self, sql: str):
        if self.backend != "postgres":
            return self._conn.executescript(sql)
        for statement in _split_sql_statements(sql):
            if statement.strip():
                self.execute(statement)

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()


def _split_sql_statements(sql: str) -> List[str]:
    statements = []
    current = []
    in_single = False
    in_dollar = False
    i = 0
    while i < len(sql):
        ch = sql[i]
        if not in_single and sql[i : i + 2] == "$$":
            in_dollar = not in_dollar
            current.append("$$")
            i += 2
            continue
        if not in_dollar:
            if ch == "'":
                in_single = not in_single
            elif ch == ";" and not in_single:
                statements.append("".join(current))
                current = []
                i += 1
                continue
        current.append(ch)
        i += 1
    if current:
        statements.append("".join(current))
    return statements


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def _connect_database(db_path: str) -> Database:
    if db_path.lower().startswith("postgres"):
        if psycopg2 is None:
            raise RuntimeError("psycopg2 is not installed.")
        conn = psycopg2.connect(db_path)
        conn.autocommit = True
        return Database("postgres", conn)

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return Database("sqlite", conn)


def get_db():
    if "db" not in g:
        db_path = current_app.config["DB_PATH"]
        g.db = _connect_database(db_path)
    return g.db


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db():
    db = get_db()
    if db.backend == "postgres":
        _init_db_postgres(db)
        return

    _init_db_sqlite(db)


_USER_TABLES = (
    "auth_users",
    "user_profiles",
    "global_config",
    "jobs",
    "user_configurations",
    "user_settings",
)


def _init_db_sqlite(db: Database):
    db.executescript(
        """
        CREATE TABLE IF NOT EXISTS auth_users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            display_name TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS user_profiles (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL UNIQUE REFERENCES auth_users(id) ON DELETE CASCADE,
            full_name TEXT,
            company TEXT,
            department TEXT,
            phone TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            last_login TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS admin_users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL UNIQUE REFERENCES auth_users(id) ON DELETE CASCADE,
            role TEXT NOT NULL DEFAULT 'admin' CHECK (role IN ('super_admin','admin','moderator')),
            permissions TEXT NOT NULL DEFAULT '{}',
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            created_by INTEGER
        );

        CREATE TABLE IF NOT EXISTS global_config (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            config_key TEXT NOT NULL UNIQUE,
            config_value TEXT NOT NULL,
            description TEXT,
            is_public INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            created_by INTEGER
        );

        CREATE TABLE IF NOT EXISTS jobs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER REFERENCES auth_users(id) ON DELETE CASCADE,
            job_name TEXT NOT NULL,
            ido_name TEXT NOT NULL,
            query_params TEXT NOT NULL DEFAULT '{}',
            output_format TEXT NOT NULL DEFAULT 'csv',
            filterable_fields TEXT NOT NULL DEFAULT '[]',
            is_template INTEGER NOT NULL DEFAULT 0,
            is_shared INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (user_id, job_name)
        );

        CREATE TABLE IF NOT EXISTS user_configurations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL REFERENCES auth_users(id) ON DELETE CASCADE,
            username TEXT NOT NULL,
            encrypted_data TEXT NOT NULL,
            salt TEXT NOT NULL,
            iv TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (user_id, username)
        );

        CREATE TABLE IF NOT EXISTS execution_history (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL REFERENCES auth_users(id) ON DELETE CASCADE,
            job_name TEXT NOT NULL,
            filters_applied TEXT NOT NULL DEFAULT '{}',
            record_count INTEGER NOT NULL DEFAULT 0,
            file_path TEXT,
            status TEXT NOT NULL DEFAULT 'running' CHECK (status IN ('success','error','running')),
            error_message TEXT,
            execution_time_ms INTEGER,
            executed_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS user_settings (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL REFERENCES auth_users(id) ON DELETE CASCADE,
            setting_key TEXT NOT NULL,
            setting_value TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (user_id, setting_key)
        );

        CREATE TABLE IF NOT EXISTS export_data (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL REFERENCES auth_users(id) ON DELETE CASCADE,
            job_name TEXT NOT NULL,
            export_data TEXT NOT NULL,
            metadata TEXT NOT NULL DEFAULT '{}',
            file_size_bytes INTEGER,
            is_shared INTEGER NOT NULL DEFAULT 0,
            expires_at TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE INDEX IF NOT EXISTS idx_jobs_user ON jobs (user_id);
        CREATE INDEX IF NOT EXISTS idx_user_configurations_username ON user_configurations (username);
        CREATE INDEX IF NOT EXISTS idx_execution_history_user ON execution_history (user_id, executed_at);
        CREATE INDEX IF NOT EXISTS idx_export_data_user ON export_data (user_id);
        """
    )

    for table in _USER_TABLES:
        db.executescript(
            f"""
            CREATE TRIGGER IF NOT EXISTS trg_{table}_updated_at
            AFTER UPDATE ON {table}
            FOR EACH ROW
            BEGIN
                UPDATE {table} SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
            END;
            """
        )

    _seed_defaults(db)
    db.commit()


def _init_db_postgres(db: Database) -> None:
    db.executescript(
        """
        CREATE TABLE IF NOT EXISTS auth_users (
            id SERIAL PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            display_name TEXT,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS user_profiles (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL UNIQUE REFERENCES auth_users(id) ON DELETE CASCADE,
            full_name TEXT,
            company TEXT,
            department TEXT,
            phone TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            last_login TIMESTAMP,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS admin_users (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL UNIQUE REFERENCES auth_users(id) ON DELETE CASCADE,
            role TEXT NOT NULL DEFAULT 'admin' CHECK (role IN ('super_admin','admin','moderator')),
            permissions TEXT NOT NULL DEFAULT '{}',
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            created_by INTEGER
        );

        CREATE TABLE IF NOT EXISTS global_config (
            id SERIAL PRIMARY KEY,
            config_key TEXT NOT NULL UNIQUE,
            config_value TEXT NOT NULL,
            description TEXT,
            is_public INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            created_by INTEGER
        );

        CREATE TABLE IF NOT EXISTS jobs (
            id SERIAL PRIMARY KEY,
            user_id INTEGER REFERENCES auth_users(id) ON DELETE CASCADE,
            job_name TEXT NOT NULL,
            ido_name TEXT NOT NULL,
            query_params TEXT NOT NULL DEFAULT '{}',
            output_format TEXT NOT NULL DEFAULT 'csv',
            filterable_fields TEXT NOT NULL DEFAULT '[]',
            is_template INTEGER NOT NULL DEFAULT 0,
            is_shared INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (user_id, job_name)
        );

        CREATE TABLE IF NOT EXISTS user_configurations (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES auth_users(id) ON DELETE CASCADE,
            username TEXT NOT NULL,
            encrypted_data TEXT NOT NULL,
            salt TEXT NOT NULL,
            iv TEXT NOT NULL,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (user_id, username)
        );

        CREATE TABLE IF NOT EXISTS execution_history (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES auth_users(id) ON DELETE CASCADE,
            job_name TEXT NOT NULL,
            filters_applied TEXT NOT NULL DEFAULT '{}',
            record_count INTEGER NOT NULL DEFAULT 0,
            file_path TEXT,
            status TEXT NOT NULL DEFAULT 'running' CHECK (status IN ('success','error','running')),
            error_message TEXT,
            execution_time_ms INTEGER,
            executed_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS user_settings (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES auth_users(id) ON DELETE CASCADE,
            setting_key TEXT NOT NULL,
            setting_value TEXT NOT NULL,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (user_id, setting_key)
        );

        CREATE TABLE IF NOT EXISTS export_data (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES auth_users(id) ON DELETE CASCADE,
            job_name TEXT NOT NULL,
            export_data TEXT NOT NULL,
            metadata TEXT NOT NULL DEFAULT '{}',
            file_size_bytes INTEGER,
            is_shared INTEGER NOT NULL DEFAULT 0,
            expires_at TIMESTAMP,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE INDEX IF NOT EXISTS idx_jobs_user ON jobs (user_id);
        CREATE INDEX IF NOT EXISTS idx_user_configurations_username ON user_configurations (username);
        CREATE INDEX IF NOT EXISTS idx_execution_history_user ON execution_history (user_id, executed_at);
        CREATE INDEX IF NOT EXISTS idx_export_data_user ON export_data (user_id);
        """
    )

    _create_postgres_updated_at_triggers(db)
    _seed_defaults(db)
    db.commit()


def _create_postgres_updated_at_triggers(db: Database) -> None:
    db.execute(
        """
        CREATE OR REPLACE FUNCTION set_updated_at()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = CURRENT_TIMESTAMP;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
        """
    )

    for table in _USER_TABLES:
        db.execute(
            f"""
            DROP TRIGGER IF EXISTS trg_{table}_updated_at ON {table};
            CREATE TRIGGER trg_{table}_updated_at
            BEFORE UPDATE ON {table}
            FOR EACH ROW
            EXECUTE FUNCTION set_updated_at();
            """
        )


def _seed_defaults(db: Database) -> None:
    _seed_global_config(db)
    _seed_template_job(db)
    _seed_bootstrap_users(db)


def _seed_global_config(db: Database) -> None:
    for key, value, description, is_public in DEFAULT_GLOBAL_CONFIG:
        db.execute(
            """
            INSERT INTO global_config (config_key, config_value, description, is_public)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (config_key) DO NOTHING
            """,
            (key, json.dumps(value), description, 1 if is_public else 0),
        )


def _seed_template_job(db: Database) -> None:
    # Shared templates have no owner; NULL user_id never collides on the unique key.
    existing = db.execute(
        "SELECT 1 FROM jobs WHERE user_id IS NULL AND job_name = ?",
        (DEFAULT_JOB["job_name"],),
    ).fetchone()
    if existing:
        return
    db.execute(
        """
        INSERT INTO jobs (
            user_id, job_name, ido_name, query_params, output_format, filterable_fields, is_template, is_shared
        )
        VALUES (NULL, ?, ?, ?, ?, ?, 1, 1)
        """,
        (
            DEFAULT_JOB["job_name"],
            DEFAULT_JOB["ido_name"],
            json.dumps(DEFAULT_JOB["query_params"]),
            DEFAULT_JOB["output_format"],
            json.dumps(DEFAULT_JOB["filterable_fields"]),
        ),
    )


def _seed_bootstrap_users(db: Database) -> None:
    try:
        raw_users = current_app.config.get("APP_USERS")
    except RuntimeError:
        raw_users = os.environ.get("APP_USERS")
    if not raw_users:
        return

    from ido_extractor.application.auth_service import AuthService

    AuthService().seed_bootstrap_users(db, raw_users)
