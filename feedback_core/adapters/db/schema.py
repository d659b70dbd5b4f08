"""DDL for the tables owned by this core, per backend dialect.

Ticket and user tables belong to the application installer; only the
tables written by the rate-limit store, audit pipeline, settings store,
notification templates and AI trend cache are created here.
"""

from __future__ import annotations

import logging

from feedback_core.adapters.db.base import AbstractDatabaseBackend, BackendKind

logger = logging.getLogger(__name__)

_SQLITE_TABLES: dict[str, str] = {
    "rate_limits": """
        CREATE TABLE IF NOT EXISTS rate_limits (
            key_id TEXT PRIMARY KEY,
            hit_count INTEGER NOT NULL DEFAULT 0,
            reset_time INTEGER NOT NULL
        )
    """,
    "audit_logs": """
        CREATE TABLE IF NOT EXISTS audit_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER,
            username TEXT,
            action TEXT NOT NULL,
            target_type TEXT,
            target_id INTEGER,
            details TEXT,
            ip_address TEXT,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "system_settings": """
        CREATE TABLE IF NOT EXISTS system_settings (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            setting_key TEXT NOT NULL UNIQUE,
            setting_value TEXT,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "email_templates": """
        CREATE TABLE IF NOT EXISTS email_templates (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            template_key TEXT NOT NULL UNIQUE,
            subject TEXT NOT NULL,
            content TEXT NOT NULL,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "admin_notification_emails": """
        CREATE TABLE IF NOT EXISTS admin_notification_emails (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email TEXT NOT NULL,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "ai_analysis_cache": """
        CREATE TABLE IF NOT EXISTS ai_analysis_cache (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            content TEXT NOT NULL,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "ai_usage_logs": """
        CREATE TABLE IF NOT EXISTS ai_usage_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            action_type TEXT NOT NULL,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
    """,
}

_MYSQL_TABLES: dict[str, str] = {
    "rate_limits": """
        CREATE TABLE IF NOT EXISTS rate_limits (
            key_id VARCHAR(255) PRIMARY KEY,
            hit_count INT NOT NULL DEFAULT 0,
            reset_time BIGINT NOT NULL
        ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    "audit_logs": """
        CREATE TABLE IF NOT EXISTS audit_logs (
            id INT AUTO_INCREMENT PRIMARY KEY,
            user_id INT,
            username VARCHAR(255),
            action VARCHAR(100) NOT NULL,
            target_type VARCHAR(50),
            target_id INT,
            details TEXT,
            ip_address VARCHAR(64),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            INDEX idx_audit_action (action),
            INDEX idx_audit_created (created_at)
        ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    "system_settings": """
        CREATE TABLE IF NOT EXISTS system_settings (
            id INT AUTO_INCREMENT PRIMARY KEY,
            setting_key VARCHAR(100) NOT NULL UNIQUE,
            setting_value TEXT,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP
        ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    "email_templates": """
        CREATE TABLE IF NOT EXISTS email_templates (
            id INT AUTO_INCREMENT PRIMARY KEY,
            template_key VARCHAR(100) NOT NULL UNIQUE,
            subject VARCHAR(255) NOT NULL,
            content TEXT NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP
        ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    "admin_notification_emails": """
        CREATE TABLE IF NOT EXISTS admin_notification_emails (
            id INT AUTO_INCREMENT PRIMARY KEY,
            email VARCHAR(255) NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    "ai_analysis_cache": """
        CREATE TABLE IF NOT EXISTS ai_analysis_cache (
            id INT AUTO_INCREMENT PRIMARY KEY,
            user_id INT NOT NULL,
            content LONGTEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            INDEX idx_ai_cache_user (user_id, created_at)
        ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    "ai_usage_logs": """
        CREATE TABLE IF NOT EXISTS ai_usage_logs (
            id INT AUTO_INCREMENT PRIMARY KEY,
            user_id INT NOT NULL,
            action_type VARCHAR(50) NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            INDEX idx_ai_usage_user (user_id, action_type)
        ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
}

CORE_TABLES = tuple(_SQLITE_TABLES)


def table_ddl(kind: BackendKind) -> dict[str, str]:
    """Return ``{table: CREATE TABLE statement}`` for a backend kind."""

    return dict(_MYSQL_TABLES if kind is BackendKind.MYSQL else _SQLITE_TABLES)


async def ensure_core_tables(backend: AbstractDatabaseBackend) -> None:
    """Create any missing core table. Idempotent."""

    for table, ddl in table_ddl(backend.kind).items():
        await backend.execute(ddl)
        logger.debug("db.schema.ensured", extra={"table": table})
