"""
Health check HTTP server for liveness and readiness probes.

Reports whether the budget database is reachable and how many plans sit in
each lifecycle status.
"""

import sqlite3
from pathlib import Path
from typing import Any

from flask import Flask, jsonify

from budget_lifecycle import __version__
from budget_lifecycle.kernel.logging import get_logger
from budget_lifecycle.kernel.metrics import plans_by_status

logger = get_logger(__name__)

app = Flask(__name__)

SERVICE_NAME = "budget-lifecycle"

# Set by initialize_health_server()
_db_path: Path | None = None
_engine: Any = None


def initialize_health_server(db_path: str | Path, engine: Any = None) -> None:
    """
    Initialize the health server with a database path.

    Args:
        db_path: Path to SQLite database
        engine: Optional BudgetEngine; when given, its settings are reported
    """
    global _db_path, _engine
    _db_path = Path(db_path)
    _engine = engine
    logger.info("Health server initialized", db_path=str(_db_path))


def _not_ready(reason: str, **extra: Any) -> tuple[Any, int]:
    return jsonify({"status": "not_ready", "reason": reason, **extra}), 503


@app.route("/health/live", methods=["GET"])
def liveness() -> tuple[Any, int]:
    """Liveness probe - the process is running."""
    return jsonify({"status": "alive", "service": SERVICE_NAME}), 200


@app.route("/health/ready", methods=["GET"])
def readiness() -> tuple[Any, int]:
    """
    Readiness probe - the budget database exists and can be queried.

    Returns:
        200 with the plan count if ready, 503 with a reason if not
    """
    if _db_path is None:
        logger.error("Readiness check failed: DB path not initialized")
        return _not_ready("database_path_not_initialized")

    if not _db_path.exists():
        logger.error("Readiness check failed: DB file does not exist", db_path=str(_db_path))
        return _not_ready("database_file_not_found", db_path=str(_db_path))

    try:
        conn = sqlite3.connect(str(_db_path), timeout=1.0)
        try:
            plan_count = conn.execute("SELECT COUNT(*) FROM budget_plans").fetchone()[0]
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.error("Readiness check failed: DB error", error=str(e))
        return _not_ready("database_operational_error", error=str(e))

    logger.debug("Readiness check passed", plan_count=plan_count)
    return jsonify({"status": "ready", "database": "accessible", "plan_count": plan_count}), 200


def _database_health(db_path: Path) -> dict[str, Any]:
    conn = sqlite3.connect(str(db_path), timeout=1.0)
    try:
        by_status = {
            status: count
            for status, count in conn.execute(
                "SELECT status, COUNT(*) FROM budget_plans GROUP BY status"
            )
        }
        expense_count = conn.execute("SELECT COUNT(*) FROM expense_records").fetchone()[0]
        page_count = conn.execute("PRAGMA page_count").fetchone()[0]
        page_size = conn.execute("PRAGMA page_size").fetchone()[0]
    finally:
        conn.close()

    for status, count in by_status.items():
        plans_by_status.labels(status=status).set(count)

    return {
        "status": "healthy",
        "path": str(db_path),
        "plan_count": sum(by_status.values()),
        "plans_by_status": by_status,
        "expense_record_count": expense_count,
        "size_mb": round(page_count * page_size / (1024 * 1024), 2),
    }


@app.route("/health", methods=["GET"])
def detailed_health() -> tuple[Any, int]:
    """
    Detailed health check - database statistics and plan counts by status.

    Returns:
        200 when healthy, 503 when degraded
    """
    health_data: dict[str, Any] = {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": __version__,
    }

    if _db_path and _db_path.exists():
        try:
            health_data["database"] = _database_health(_db_path)
        except sqlite3.Error as e:
            logger.error("Database health check failed", error=str(e))
            health_data["database"] = {"status": "unhealthy", "error": str(e)}
            health_data["status"] = "degraded"
    else:
        health_data["database"] = {"status": "not_initialized"}
        health_data["status"] = "degraded"

    if _engine is not None:
        health_data["settings"] = {
            "default_currency": _engine.settings.default_currency,
            "optimistic_locking": _engine.settings.optimistic_locking,
        }

    status_code = 200 if health_data["status"] == "healthy" else 503
    return jsonify(health_data), status_code


def run_health_server(port: int = 8080, debug: bool = False) -> None:
    """
    Run the health check server.

    Args:
        port: Port to listen on (default: 8080)
        debug: Enable Flask debug mode (default: False)
    """
    logger.info("Starting health check server", port=port)
    app.run(host="0.0.0.0", port=port, debug=debug)


if __name__ == "__main__":
    initialize_health_server("budgets.db")
    run_health_server(port=8080, debug=True)
