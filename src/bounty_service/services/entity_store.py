"""SQLite-backed storage for users, tasks, submissions, payments and the budget."""

from __future__ import annotations

import contextlib
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from threading import RLock
from typing import TYPE_CHECKING, Any

from bounty_service.amounts import ZERO, amount_from_db, amount_to_db

if TYPE_CHECKING:
    from collections.abc import Iterator
    from decimal import Decimal


class DuplicateUsernameError(Exception):
    """Raised when inserting a user whose username is already taken."""


class DuplicatePaymentError(Exception):
    """Raised when a second payment is inserted for the same submission."""


class EntityStore:
    """
    Single-writer repository for every entity the service tracks.

    All access is serialised by a re-entrant lock. Writes issued inside
    ``transaction()`` are committed together when the outermost block exits.
    """

    _USER_COLUMNS: tuple[str, ...] = (
        "user_id",
        "username",
        "password_hash",
        "wallet_address",
        "total_earnings",
        "tasks_completed",
        "created_at",
    )
    _TASK_COLUMNS: tuple[str, ...] = (
        "task_id",
        "title",
        "description",
        "task_type",
        "reward",
        "status",
        "verification_criteria",
        "max_submissions",
        "current_submissions",
        "deadline",
        "assigned_to",
        "created_at",
        "completed_at",
        "cancelled_at",
    )
    _SUBMISSION_COLUMNS: tuple[str, ...] = (
        "submission_id",
        "task_id",
        "worker_id",
        "proof_type",
        "proof_data",
        "proof_description",
        "status",
        "verification_reasoning",
        "verification_score",
        "submitted_at",
        "verified_at",
    )
    _PAYMENT_COLUMNS: tuple[str, ...] = (
        "payment_id",
        "submission_id",
        "task_id",
        "worker_id",
        "wallet_address",
        "amount",
        "status",
        "signature",
        "error_message",
        "created_at",
        "completed_at",
    )

    def __init__(self, db_path: str) -> None:
        self._lock = RLock()
        self._depth = 0
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(db_path, check_same_thread=False)
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.execute("PRAGMA foreign_keys=ON")
        self._db.execute("PRAGMA busy_timeout=5000")
        self._init_schema()

    def _init_schema(self) -> None:
        with self._lock:
            self._db.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    user_id TEXT PRIMARY KEY,
                    username TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    wallet_address TEXT,
                    total_earnings TEXT NOT NULL DEFAULT '0',
                    tasks_completed INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS tasks (
                    task_id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL,
                    task_type TEXT NOT NULL,
                    reward TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'open',
                    verification_criteria TEXT NOT NULL,
                    max_submissions INTEGER NOT NULL DEFAULT 1,
                    current_submissions INTEGER NOT NULL DEFAULT 0,
                    deadline TEXT,
                    assigned_to TEXT REFERENCES users(user_id),
                    created_at TEXT NOT NULL,
                    completed_at TEXT,
                    cancelled_at TEXT,
                    CHECK (current_submissions >= 0),
                    CHECK (current_submissions <= max_submissions)
                );

                CREATE TABLE IF NOT EXISTS submissions (
                    submission_id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL REFERENCES tasks(task_id),
                    worker_id TEXT NOT NULL REFERENCES users(user_id),
                    proof_type TEXT NOT NULL,
                    proof_data TEXT NOT NULL,
                    proof_description TEXT,
                    status TEXT NOT NULL DEFAULT 'pending',
                    verification_reasoning TEXT,
                    verification_score INTEGER,
                    submitted_at TEXT NOT NULL,
                    verified_at TEXT
                );

                CREATE TABLE IF NOT EXISTS payments (
                    payment_id TEXT PRIMARY KEY,
                    submission_id TEXT NOT NULL UNIQUE REFERENCES submissions(submission_id),
                    task_id TEXT NOT NULL REFERENCES tasks(task_id),
                    worker_id TEXT NOT NULL REFERENCES users(user_id),
                    wallet_address TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    signature TEXT,
                    error_message TEXT,
                    created_at TEXT NOT NULL,
                    completed_at TEXT
                );

                CREATE TABLE IF NOT EXISTS budget (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    wallet_address TEXT,
                    balance TEXT NOT NULL DEFAULT '0',
                    total_paid_out TEXT NOT NULL DEFAULT '0',
                    last_updated TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_submissions_task ON submissions(task_id);
                CREATE INDEX IF NOT EXISTS idx_submissions_status ON submissions(status);
                CREATE INDEX IF NOT EXISTS idx_payments_status ON payments(status);
                """
            )
            self._db.commit()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group writes into one atomic commit. Nested blocks join the outer one."""
        with self._lock:
            if self._depth > 0:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            self._db.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield
            except BaseException:
                self._depth = 0
                with contextlib.suppress(sqlite3.Error):
                    self._db.rollback()
                raise
            self._depth = 0
            self._db.commit()

    def _update(
        self,
        table: str,
        key_column: str,
        key: str,
        columns: tuple[str, ...],
        updates: dict[str, Any],
        expected_status: str | None,
    ) -> int:
        if len(updates) == 0:
            return 0
        if any(column not in columns for column in updates):
            msg = f"Attempted to update unknown {table} column"
            raise ValueError(msg)

        set_clause = ", ".join(f"{column} = ?" for column in updates)
        params: list[object] = list(updates.values())
        query = f"UPDATE {table} SET {set_clause} WHERE {key_column} = ?"  # nosec B608
        params.append(key)
        if expected_status is not None:
            query += " AND status = ?"
            params.append(expected_status)

        with self.transaction():
            cursor = self._db.execute(query, params)
        return int(cursor.rowcount)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def _row_to_user(self, row: sqlite3.Row) -> dict[str, Any]:
        user = {column: row[column] for column in self._USER_COLUMNS}
        user["total_earnings"] = amount_from_db(row["total_earnings"])
        return user

    def insert_user(self, user_data: dict[str, Any]) -> None:
        """Insert a new user row."""
        values = [user_data[column] for column in self._USER_COLUMNS]
        values[self._USER_COLUMNS.index("total_earnings")] = amount_to_db(
            user_data["total_earnings"]
        )
        placeholders = ", ".join("?" for _ in self._USER_COLUMNS)
        try:
            with self.transaction():
                self._db.execute(
                    f"INSERT INTO users ({', '.join(self._USER_COLUMNS)}) "  # nosec B608
                    f"VALUES ({placeholders})",
                    values,
                )
        except sqlite3.IntegrityError as exc:
            if "users.username" in str(exc):
                msg = f"Username {user_data['username']} is already taken"
                raise DuplicateUsernameError(msg) from exc
            raise

    def get_user(self, user_id: str) -> dict[str, Any] | None:
        """Fetch a user by ID."""
        with self._lock:
            row = self._db.execute("SELECT * FROM users WHERE user_id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_user_by_username(self, username: str) -> dict[str, Any] | None:
        """Fetch a user by username."""
        with self._lock:
            row = self._db.execute(
                "SELECT * FROM users WHERE username = ?", (username,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def update_user_wallet(self, user_id: str, wallet_address: str) -> int:
        """Set a user's payout address."""
        return self._update(
            "users",
            "user_id",
            user_id,
            self._USER_COLUMNS,
            {"wallet_address": wallet_address},
            expected_status=None,
        )

    def count_users(self) -> int:
        """Count registered users."""
        with self._lock:
            row = self._db.execute("SELECT COUNT(*) FROM users").fetchone()
        return int(row[0]) if row is not None else 0

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def _row_to_task(self, row: sqlite3.Row) -> dict[str, Any]:
        task = {column: row[column] for column in self._TASK_COLUMNS}
        task["reward"] = amount_from_db(row["reward"])
        return task

    def insert_task(self, task_data: dict[str, Any]) -> None:
        """Insert a new task row."""
        values = [task_data[column] for column in self._TASK_COLUMNS]
        values[self._TASK_COLUMNS.index("reward")] = amount_to_db(task_data["reward"])
        placeholders = ", ".join("?" for _ in self._TASK_COLUMNS)
        with self.transaction():
            self._db.execute(
                f"INSERT INTO tasks ({', '.join(self._TASK_COLUMNS)}) "  # nosec B608
                f"VALUES ({placeholders})",
                values,
            )

    def get_task(self, task_id: str) -> dict[str, Any] | None:
        """Fetch a task by ID."""
        with self._lock:
            row = self._db.execute("SELECT * FROM tasks WHERE task_id = ?", (task_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def list_tasks(
        self,
        status: str | None,
        assigned_to: str | None,
        limit: int | None,
        offset: int | None,
    ) -> list[dict[str, Any]]:
        """List tasks, newest first, with optional filters."""
        query = "SELECT * FROM tasks"
        clauses: list[str] = []
        params: list[object] = []

        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        if assigned_to is not None:
            clauses.append("assigned_to = ?")
            params.append(assigned_to)

        if len(clauses) > 0:
            query += " WHERE " + " AND ".join(clauses)

        query += " ORDER BY created_at DESC, rowid DESC"

        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
            if offset is not None:
                query += " OFFSET ?"
                params.append(offset)
        elif offset is not None:
            query += " LIMIT -1 OFFSET ?"
            params.append(offset)

        with self._lock:
            rows = self._db.execute(query, params).fetchall()
        return [self._row_to_task(row) for row in rows]

    def update_task(
        self,
        task_id: str,
        updates: dict[str, Any],
        *,
        expected_status: str | None,
    ) -> int:
        """Update task columns and return the number of affected rows."""
        return self._update(
            "tasks", "task_id", task_id, self._TASK_COLUMNS, updates, expected_status
        )

    def increment_task_submissions(self, task_id: str) -> int:
        """Increment the submission counter while it is below the cap."""
        with self.transaction():
            cursor = self._db.execute(
                "UPDATE tasks SET current_submissions = current_submissions + 1 "
                "WHERE task_id = ? AND current_submissions < max_submissions "
                "AND status IN ('open', 'in_progress')",
                (task_id,),
            )
        return int(cursor.rowcount)

    def count_tasks_by_status(self) -> dict[str, int]:
        """Count tasks grouped by status."""
        with self._lock:
            rows = self._db.execute("SELECT status, COUNT(*) FROM tasks GROUP BY status").fetchall()
        return {str(row[0]): int(row[1]) for row in rows}

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------

    def _row_to_submission(self, row: sqlite3.Row) -> dict[str, Any]:
        return {column: row[column] for column in self._SUBMISSION_COLUMNS}

    def insert_submission(self, submission_data: dict[str, Any]) -> None:
        """Insert a new submission row."""
        values = [submission_data[column] for column in self._SUBMISSION_COLUMNS]
        placeholders = ", ".join("?" for _ in self._SUBMISSION_COLUMNS)
        with self.transaction():
            self._db.execute(
                f"INSERT INTO submissions ({', '.join(self._SUBMISSION_COLUMNS)}) "  # nosec B608
                f"VALUES ({placeholders})",
                values,
            )

    def get_submission(self, submission_id: str) -> dict[str, Any] | None:
        """Fetch a submission by ID."""
        with self._lock:
            row = self._db.execute(
                "SELECT * FROM submissions WHERE submission_id = ?", (submission_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_submission(row)

    def list_submissions(
        self,
        task_id: str | None = None,
        worker_id: str | None = None,
        status: str | None = None,
    ) -> list[dict[str, Any]]:
        """List submissions in submission order."""
        query = "SELECT * FROM submissions"
        clauses: list[str] = []
        params: list[object] = []

        if task_id is not None:
            clauses.append("task_id = ?")
            params.append(task_id)
        if worker_id is not None:
            clauses.append("worker_id = ?")
            params.append(worker_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(status)

        if len(clauses) > 0:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY submitted_at, rowid"

        with self._lock:
            rows = self._db.execute(query, params).fetchall()
        return [self._row_to_submission(row) for row in rows]

    def record_verdict(
        self,
        submission_id: str,
        status: str,
        reasoning: str,
        score: int,
        verified_at: str,
    ) -> int:
        """Stamp a verdict on a pending submission. Returns affected rows."""
        return self._update(
            "submissions",
            "submission_id",
            submission_id,
            self._SUBMISSION_COLUMNS,
            {
                "status": status,
                "verification_reasoning": reasoning,
                "verification_score": score,
                "verified_at": verified_at,
            },
            expected_status="pending",
        )

    def count_submissions_by_status(self) -> dict[str, int]:
        """Count submissions grouped by status."""
        with self._lock:
            rows = self._db.execute(
                "SELECT status, COUNT(*) FROM submissions GROUP BY status"
            ).fetchall()
        return {str(row[0]): int(row[1]) for row in rows}

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def _row_to_payment(self, row: sqlite3.Row) -> dict[str, Any]:
        payment = {column: row[column] for column in self._PAYMENT_COLUMNS}
        payment["amount"] = amount_from_db(row["amount"])
        return payment

    def insert_payment(self, payment_data: dict[str, Any]) -> None:
        """Insert a payment. At most one payment exists per submission."""
        values = [payment_data[column] for column in self._PAYMENT_COLUMNS]
        values[self._PAYMENT_COLUMNS.index("amount")] = amount_to_db(payment_data["amount"])
        placeholders = ", ".join("?" for _ in self._PAYMENT_COLUMNS)
        try:
            with self.transaction():
                self._db.execute(
                    f"INSERT INTO payments ({', '.join(self._PAYMENT_COLUMNS)}) "  # nosec B608
                    f"VALUES ({placeholders})",
                    values,
                )
        except sqlite3.IntegrityError as exc:
            if "payments.submission_id" in str(exc):
                msg = f"Submission {payment_data['submission_id']} already has a payment"
                raise DuplicatePaymentError(msg) from exc
            raise

    def get_payment(self, payment_id: str) -> dict[str, Any] | None:
        """Fetch a payment by ID."""
        with self._lock:
            row = self._db.execute(
                "SELECT * FROM payments WHERE payment_id = ?", (payment_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_payment(row)

    def get_payment_for_submission(self, submission_id: str) -> dict[str, Any] | None:
        """Fetch the payment created for a submission, if any."""
        with self._lock:
            row = self._db.execute(
                "SELECT * FROM payments WHERE submission_id = ?", (submission_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_payment(row)

    def list_payments(
        self,
        status: str | None = None,
        worker_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """List payments in creation order."""
        query = "SELECT * FROM payments"
        clauses: list[str] = []
        params: list[object] = []

        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        if worker_id is not None:
            clauses.append("worker_id = ?")
            params.append(worker_id)

        if len(clauses) > 0:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at, rowid"

        with self._lock:
            rows = self._db.execute(query, params).fetchall()
        return [self._row_to_payment(row) for row in rows]

    def update_payment(
        self,
        payment_id: str,
        updates: dict[str, Any],
        *,
        expected_status: str | None,
    ) -> int:
        """Update payment columns and return the number of affected rows."""
        return self._update(
            "payments", "payment_id", payment_id, self._PAYMENT_COLUMNS, updates, expected_status
        )

    def complete_payment(self, payment_id: str, signature: str, completed_at: str) -> bool:
        """
        Mark a processing payment completed and accrue it, all in one commit.

        The budget paid-out total and the worker's earnings and completed count
        move together with the payment status. Returns False without touching
        anything when the payment is not in ``processing``, so repeating the
        call for the same payment accrues at most once.
        """
        with self.transaction():
            cursor = self._db.execute(
                "UPDATE payments SET status = 'completed', signature = ?, completed_at = ?, "
                "error_message = NULL WHERE payment_id = ? AND status = 'processing'",
                (signature, completed_at, payment_id),
            )
            if cursor.rowcount == 0:
                return False

            row = self._db.execute(
                "SELECT amount, worker_id FROM payments WHERE payment_id = ?", (payment_id,)
            ).fetchone()
            amount = amount_from_db(row["amount"])

            self._accrue_paid_out(amount, completed_at)

            user = self._db.execute(
                "SELECT total_earnings FROM users WHERE user_id = ?", (row["worker_id"],)
            ).fetchone()
            if user is None:
                msg = f"Payment {payment_id} references unknown worker"
                raise RuntimeError(msg)
            self._db.execute(
                "UPDATE users SET total_earnings = ?, tasks_completed = tasks_completed + 1 "
                "WHERE user_id = ?",
                (amount_to_db(amount_from_db(user["total_earnings"]) + amount), row["worker_id"]),
            )
        return True

    def sum_payments(self, status: str) -> tuple[Decimal, int]:
        """Total amount and count of payments in a status."""
        with self._lock:
            rows = self._db.execute(
                "SELECT amount FROM payments WHERE status = ?", (status,)
            ).fetchall()
        total = sum((amount_from_db(row["amount"]) for row in rows), ZERO)
        return total, len(rows)

    def count_payments_by_status(self) -> dict[str, int]:
        """Count payments grouped by status."""
        with self._lock:
            rows = self._db.execute(
                "SELECT status, COUNT(*) FROM payments GROUP BY status"
            ).fetchall()
        return {str(row[0]): int(row[1]) for row in rows}

    # ------------------------------------------------------------------
    # Budget
    # ------------------------------------------------------------------

    def get_budget(self) -> dict[str, Any] | None:
        """Fetch the singleton budget record, if it exists yet."""
        with self._lock:
            row = self._db.execute("SELECT * FROM budget WHERE id = 1").fetchone()
        if row is None:
            return None
        return {
            "wallet_address": row["wallet_address"],
            "balance": amount_from_db(row["balance"]),
            "total_paid_out": amount_from_db(row["total_paid_out"]),
            "last_updated": row["last_updated"],
        }

    def set_budget_balance(
        self,
        balance: Decimal,
        wallet_address: str | None,
        updated_at: str,
    ) -> None:
        """Overwrite the observed balance, creating the record if needed."""
        with self.transaction():
            self._db.execute(
                "INSERT INTO budget (id, wallet_address, balance, total_paid_out, last_updated) "
                "VALUES (1, ?, ?, '0', ?) "
                "ON CONFLICT(id) DO UPDATE SET balance = excluded.balance, "
                "wallet_address = COALESCE(excluded.wallet_address, budget.wallet_address), "
                "last_updated = excluded.last_updated",
                (wallet_address, amount_to_db(balance), updated_at),
            )

    def add_budget_balance(self, amount: Decimal, updated_at: str) -> None:
        """Add to the stored balance, creating the record if needed."""
        with self.transaction():
            current = self.get_budget()
            balance = current["balance"] if current is not None else ZERO
            wallet = current["wallet_address"] if current is not None else None
            self.set_budget_balance(balance + amount, wallet, updated_at)

    def _accrue_paid_out(self, amount: Decimal, updated_at: str) -> None:
        current = self._db.execute("SELECT total_paid_out FROM budget WHERE id = 1").fetchone()
        if current is None:
            self._db.execute(
                "INSERT INTO budget (id, wallet_address, balance, total_paid_out, last_updated) "
                "VALUES (1, NULL, '0', ?, ?)",
                (amount_to_db(amount), updated_at),
            )
            return
        self._db.execute(
            "UPDATE budget SET total_paid_out = ?, last_updated = ? WHERE id = 1",
            (amount_to_db(amount_from_db(current["total_paid_out"]) + amount), updated_at),
        )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()
