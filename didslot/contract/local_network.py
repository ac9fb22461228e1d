"""SQLite-backed local network hosting the slot storage contract.

Design:
- One SQLite transaction per atomic group: every transaction in the group
  applies, or none does.
- Signatures are verified against the sender address before anything
  is applied.
- The contract program (start / upload / finish) runs here, so the
  metadata state machine is enforced on the "chain" side exactly as the
  deployed contract enforces it.
- Slot rent is computed from the slots actually created, independently
  of the client's cost estimate.

Rounds advance by one per confirmed group.  Confirmation is immediate,
so ``wait_rounds`` only needs to be positive.
"""

from __future__ import annotations

import hashlib
import logging
import sqlite3
import struct
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from didslot.contract.identity import decode_address, encode_address, verify_signature
from didslot.contract.network import ContractRejection, NetworkError
from didslot.contract.transactions import (
    MAX_GROUP_SIZE,
    AppCall,
    GroupConfirmation,
    Payment,
    SignedTransaction,
    SuggestedParams,
)
from didslot.core.batching import encode_slot_key
from didslot.core.hasher import sha256_hex
from didslot.models.limits import DEFAULT_LIMITS, ContractLimits
from didslot.models.upload import (
    STATUS_CODES,
    VALID_STATUS_TRANSITIONS,
    UploadMetadata,
    UploadStatus,
)

logger = logging.getLogger(__name__)

# start (8) + end (8) + status (1) + last slot size (8) + uploaded bytes (8)
_METADATA_BODY_WIDTH = 8 + 8 + 1 + 8 + 8
_FIRST_APP_ID = 1001
_STATUS_BY_CODE = {code: status for status, code in STATUS_CODES.items()}


def check_status_transition(current: UploadStatus, target: UploadStatus) -> int:
    """Return the status code for ``target`` if the record may move there.

    Raises ``ContractRejection`` (``bad_transition``) for any move the
    status table does not allow, so a record never goes backward or skips
    ``started``.
    """
    if target not in VALID_STATUS_TRANSITIONS[current]:
        raise ContractRejection(
            "bad_transition",
            f"Upload status cannot move from {current.value} to {target.value}",
        )
    return STATUS_CODES[target]


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_SCHEMA = """
CREATE TABLE IF NOT EXISTS chain_state (
    key    TEXT PRIMARY KEY,
    value  INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS accounts (
    address  TEXT PRIMARY KEY,
    balance  INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS applications (
    app_id     INTEGER PRIMARY KEY,
    creator    TEXT NOT NULL,
    address    TEXT NOT NULL UNIQUE,
    next_slot  INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS upload_metadata (
    app_id          INTEGER NOT NULL,
    identity        BLOB NOT NULL,
    start_slot      INTEGER NOT NULL,
    end_slot        INTEGER NOT NULL,
    status          INTEGER NOT NULL,
    last_slot_size  INTEGER NOT NULL,
    uploaded_bytes  INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (app_id, identity)
);
CREATE TABLE IF NOT EXISTS slots (
    app_id      INTEGER NOT NULL,
    slot_index  INTEGER NOT NULL,
    identity    BLOB NOT NULL,
    data        BLOB NOT NULL,
    coverage    BLOB NOT NULL,
    PRIMARY KEY (app_id, slot_index)
);
CREATE TABLE IF NOT EXISTS transactions (
    tx_id            TEXT PRIMARY KEY,
    group_id         TEXT NOT NULL,
    type             TEXT NOT NULL,
    sender           TEXT NOT NULL,
    confirmed_round  INTEGER NOT NULL
);
"""


class LocalNetwork:
    """Local, persistent stand-in for the network and the deployed contract.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.  Created if it does not exist.
    limits:
        Contract constants the hosted program enforces.
    genesis_id:
        Network identifier stamped into suggested params.
    min_fee:
        Fee charged per transaction.
    validity_window:
        Rounds a transaction stays valid after its first valid round.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        limits: ContractLimits = DEFAULT_LIMITS,
        genesis_id: str = "localnet-v1",
        min_fee: int = 1000,
        validity_window: int = 1000,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self.limits = limits
        self.genesis_id = genesis_id
        self.min_fee = min_fee
        self.validity_window = validity_window
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self._db_path), check_same_thread=False, isolation_level=None
        )
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_schema(self) -> None:
        conn = self._connect()
        try:
            conn.executescript(_SCHEMA)
            conn.execute(
                "INSERT OR IGNORE INTO chain_state (key, value) VALUES ('round', 1)"
            )
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    @contextmanager
    def _reader(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Queries (read-only)
    # ------------------------------------------------------------------

    def current_round(self) -> int:
        with self._reader() as conn:
            return self._round(conn)

    def suggested_params(self) -> SuggestedParams:
        current = self.current_round()
        return SuggestedParams(
            fee=self.min_fee,
            first_valid=current,
            last_valid=current + self.validity_window,
            genesis_id=self.genesis_id,
        )

    def account_balance(self, address: str) -> int:
        with self._reader() as conn:
            row = conn.execute(
                "SELECT balance FROM accounts WHERE address = ?", (address,)
            ).fetchone()
        return row[0] if row else 0

    def application_address(self, app_id: int) -> str:
        return self._app_address(app_id)

    def read_metadata(self, app_id: int, identity_key: bytes) -> UploadMetadata | None:
        with self._reader() as conn:
            row = self._metadata_row(conn, app_id, identity_key)
        if row is None:
            return None
        start_slot, end_slot, status, last_slot_size, uploaded_bytes = row
        return UploadMetadata(
            start_slot=start_slot,
            end_slot=end_slot,
            status=_STATUS_BY_CODE[status],
            last_slot_size=last_slot_size,
            uploaded_bytes=uploaded_bytes,
        )

    def read_slot(self, app_id: int, slot_index: int) -> bytes:
        with self._reader() as conn:
            row = conn.execute(
                "SELECT data FROM slots WHERE app_id = ? AND slot_index = ?",
                (app_id, slot_index),
            ).fetchone()
        if row is None:
            raise NetworkError(f"Slot {slot_index} does not exist on app {app_id}")
        return bytes(row[0])

    def transaction_round(self, tx_id: str) -> int | None:
        """Return the round a transaction was confirmed in, if any."""
        with self._reader() as conn:
            row = conn.execute(
                "SELECT confirmed_round FROM transactions WHERE tx_id = ?", (tx_id,)
            ).fetchone()
        return row[0] if row else None

    # ------------------------------------------------------------------
    # Local account management
    # ------------------------------------------------------------------

    def fund(self, address: str, amount: int) -> int:
        """Credit ``amount`` to ``address`` and return the new balance."""
        if amount < 0:
            raise ValueError("Funding amount must be >= 0")
        decode_address(address)
        with self._transaction() as conn:
            self._credit(conn, address, amount)
            balance = self._balance(conn, address)
        logger.info("Funded %s with %d (balance %d)", address, amount, balance)
        return balance

    # ------------------------------------------------------------------
    # Group submission
    # ------------------------------------------------------------------

    def submit_group(
        self, group: list[SignedTransaction], *, wait_rounds: int = 3
    ) -> GroupConfirmation:
        if wait_rounds < 1:
            raise ValueError("wait_rounds must be >= 1")
        if not group:
            raise ContractRejection("bad_group", "Empty transaction group")
        if len(group) > MAX_GROUP_SIZE:
            raise ContractRejection(
                "bad_group",
                f"Group of {len(group)} exceeds the {MAX_GROUP_SIZE} transaction cap",
            )

        tx_ids = [stxn.tx_id for stxn in group]
        if len(set(tx_ids)) != len(tx_ids):
            raise ContractRejection("duplicate_txn", "Group contains duplicate transactions")
        group_id = sha256_hex("".join(tx_ids).encode("ascii"))

        try:
            with self._transaction() as conn:
                current = self._round(conn)
                created_app_id: int | None = None
                for position, stxn in enumerate(group):
                    self._check_signature(stxn)
                    self._check_not_seen(conn, tx_ids[position])
                    txn = stxn.txn
                    self._check_validity(txn, current)
                    self._debit(conn, txn.sender, txn.fee)
                    if isinstance(txn, Payment):
                        self._debit(conn, txn.sender, txn.amount)
                        self._credit(conn, txn.receiver, txn.amount)
                    elif isinstance(txn, AppCall):
                        created = self._run_program(conn, txn, group, position)
                        if created is not None:
                            created_app_id = created
                    else:
                        raise ContractRejection(
                            "bad_txn_type", f"Unsupported transaction type {txn.type!r}"
                        )
                    conn.execute(
                        "INSERT INTO transactions (tx_id, group_id, type, sender, confirmed_round) "
                        "VALUES (?, ?, ?, ?, ?)",
                        (tx_ids[position], group_id, txn.type, txn.sender, current),
                    )
                conn.execute(
                    "UPDATE chain_state SET value = ? WHERE key = 'round'", (current + 1,)
                )
        except ContractRejection as exc:
            logger.warning("Group %s rejected: %s", group_id[:12], exc)
            raise

        logger.debug(
            "Group %s confirmed in round %d (%d txns)", group_id[:12], current, len(group)
        )
        return GroupConfirmation(
            tx_ids=tx_ids, confirmed_round=current, created_app_id=created_app_id
        )

    # ------------------------------------------------------------------
    # Protocol checks
    # ------------------------------------------------------------------

    @staticmethod
    def _check_signature(stxn: SignedTransaction) -> None:
        try:
            public_key = decode_address(stxn.txn.sender)
        except ValueError as exc:
            raise ContractRejection("bad_sender", str(exc)) from exc
        if not verify_signature(public_key, stxn.txn.signing_bytes(), stxn.signature):
            raise ContractRejection(
                "bad_signature", f"Signature does not match sender {stxn.txn.sender}"
            )

    @staticmethod
    def _check_not_seen(conn: sqlite3.Connection, tx_id: str) -> None:
        row = conn.execute(
            "SELECT 1 FROM transactions WHERE tx_id = ?", (tx_id,)
        ).fetchone()
        if row:
            raise ContractRejection("duplicate_txn", f"Transaction {tx_id} already confirmed")

    def _check_validity(self, txn: Payment | AppCall, current: int) -> None:
        if txn.genesis_id != self.genesis_id:
            raise ContractRejection(
                "wrong_network", f"Transaction targets {txn.genesis_id}, not {self.genesis_id}"
            )
        if not txn.first_valid <= current <= txn.last_valid:
            raise ContractRejection(
                "expired",
                f"Round {current} outside validity window "
                f"[{txn.first_valid}, {txn.last_valid}]",
            )
        if txn.fee < self.min_fee:
            raise ContractRejection("fee_too_low", f"Fee {txn.fee} below minimum {self.min_fee}")

    # ------------------------------------------------------------------
    # Contract program
    # ------------------------------------------------------------------

    def _run_program(
        self,
        conn: sqlite3.Connection,
        call: AppCall,
        group: list[SignedTransaction],
        position: int,
    ) -> int | None:

        if call.app_id == 0:
            if call.method != "create_application":
                raise ContractRejection("unknown_method", f"Cannot call {call.method} on app 0")
            return self._create_application(conn, call)

        app = conn.execute(
            "SELECT address FROM applications WHERE app_id = ?", (call.app_id,)
        ).fetchone()
        if app is None:
            raise ContractRejection("unknown_app", f"Application {call.app_id} does not exist")

        self._authorize(call)
        if call.method == "start_upload":
            payment = group[position - 1].txn if position > 0 else None
            self._start_upload(conn, call, payment, app_address=app[0])
        elif call.method == "upload":
            self._upload(conn, call)
        elif call.method == "finish_upload":
            self._finish_upload(conn, call)
        else:
            raise ContractRejection("unknown_method", f"Unknown method {call.method!r}")
        return None

    def _create_application(self, conn: sqlite3.Connection, call: AppCall) -> int:
        row = conn.execute("SELECT MAX(app_id) FROM applications").fetchone()
        app_id = (row[0] or _FIRST_APP_ID - 1) + 1
        conn.execute(
            "INSERT INTO applications (app_id, creator, address, next_slot) VALUES (?, ?, ?, 0)",
            (app_id, call.sender, self._app_address(app_id)),
        )
        logger.info("Created application %d for %s", app_id, call.sender)
        return app_id

    def _authorize(self, call: AppCall) -> None:
        try:
            owner = encode_address(call.identity)
        except ValueError as exc:
            raise ContractRejection("bad_identity", str(exc)) from exc
        if owner != call.sender:
            raise ContractRejection(
                "unauthorized", f"Sender {call.sender} does not own identity {owner}"
            )
        if len(call.slot_refs) > self.limits.max_slot_refs_per_batch:
            raise ContractRejection(
                "too_many_references",
                f"{len(call.slot_refs)} slot references exceed the limit of "
                f"{self.limits.max_slot_refs_per_batch}",
            )
        self._require_reference(call, call.identity)

    @staticmethod
    def _require_reference(call: AppCall, name: bytes) -> None:
        if not any(ref.app_id == call.app_id and ref.name == name for ref in call.slot_refs):
            raise ContractRejection(
                "missing_reference", f"Call {call.method} does not reference slot {name.hex()}"
            )

    def _slot_rent(self, size: int, key_width: int) -> int:
        return self.limits.cost_per_slot + self.limits.cost_per_byte * (key_width + size)

    def _start_upload(
        self,
        conn: sqlite3.Connection,
        call: AppCall,
        payment: Payment | AppCall | None,
        *,
        app_address: str,
    ) -> None:
        if self._metadata_row(conn, call.app_id, call.identity) is not None:
            raise ContractRejection("already_started", "Identity already has an upload record")

        slot_count = call.slot_count or 0
        last_slot_size = call.last_slot_size or 0
        if slot_count < 1 or not 1 <= last_slot_size <= self.limits.max_slot_size:
            raise ContractRejection(
                "bad_layout",
                f"Invalid layout: {slot_count} slots, last slot {last_slot_size} bytes",
            )

        if (
            not isinstance(payment, Payment)
            or payment.receiver != app_address
            or payment.sender != call.sender
        ):
            raise ContractRejection(
                "missing_payment", "start_upload must follow a payment to the application"
            )

        sizes = [self.limits.max_slot_size] * (slot_count - 1) + [last_slot_size]
        required = sum(self._slot_rent(size, self.limits.slot_key_width) for size in sizes)
        required += self._slot_rent(_METADATA_BODY_WIDTH, len(call.identity))
        if payment.amount < required:
            raise ContractRejection(
                "insufficient_payment",
                f"Payment of {payment.amount} does not cover slot rent of {required}",
            )

        (start_slot,) = conn.execute(
            "SELECT next_slot FROM applications WHERE app_id = ?", (call.app_id,)
        ).fetchone()
        end_slot = start_slot + slot_count
        conn.execute(
            "UPDATE applications SET next_slot = ? WHERE app_id = ?", (end_slot, call.app_id)
        )
        conn.executemany(
            "INSERT INTO slots (app_id, slot_index, identity, data, coverage) "
            "VALUES (?, ?, ?, ?, ?)",
            [
                (call.app_id, start_slot + i, call.identity, bytes(size), bytes(size))
                for i, size in enumerate(sizes)
            ],
        )
        conn.execute(
            "INSERT INTO upload_metadata "
            "(app_id, identity, start_slot, end_slot, status, last_slot_size, uploaded_bytes) "
            "VALUES (?, ?, ?, ?, ?, ?, 0)",
            (
                call.app_id,
                call.identity,
                start_slot,
                end_slot,
                check_status_transition(UploadStatus.NOT_STARTED, UploadStatus.STARTED),
                last_slot_size,
            ),
        )

    def _upload(self, conn: sqlite3.Connection, call: AppCall) -> None:
        meta = self._started_metadata(conn, call)
        start_slot, end_slot = meta[0], meta[1]
        if call.slot_index is None or call.offset is None or call.data is None:
            raise ContractRejection("bad_args", "upload requires slot_index, offset and data")
        if len(call.data) > self.limits.bytes_per_call:
            raise ContractRejection(
                "oversized_call",
                f"{len(call.data)} bytes exceed the per-call limit of {self.limits.bytes_per_call}",
            )
        if not start_slot <= call.slot_index < end_slot:
            raise ContractRejection(
                "out_of_range",
                f"Slot {call.slot_index} outside allocated range [{start_slot}, {end_slot})",
            )
        self._require_reference(call, encode_slot_key(call.slot_index))

        data, coverage = conn.execute(
            "SELECT data, coverage FROM slots WHERE app_id = ? AND slot_index = ?",
            (call.app_id, call.slot_index),
        ).fetchone()
        end = call.offset + len(call.data)
        if call.offset < 0 or end > len(data):
            raise ContractRejection(
                "overflow",
                f"Write [{call.offset}, {end}) overflows slot of {len(data)} bytes",
            )

        data = bytearray(data)
        coverage = bytearray(coverage)
        newly_covered = coverage[call.offset:end].count(0)
        data[call.offset:end] = call.data
        coverage[call.offset:end] = b"\x01" * len(call.data)
        conn.execute(
            "UPDATE slots SET data = ?, coverage = ? WHERE app_id = ? AND slot_index = ?",
            (bytes(data), bytes(coverage), call.app_id, call.slot_index),
        )
        conn.execute(
            "UPDATE upload_metadata SET uploaded_bytes = uploaded_bytes + ? "
            "WHERE app_id = ? AND identity = ?",
            (newly_covered, call.app_id, call.identity),
        )

    def _finish_upload(self, conn: sqlite3.Connection, call: AppCall) -> None:
        start_slot, end_slot, status, last_slot_size, uploaded = self._started_metadata(conn, call)
        expected = (end_slot - start_slot - 1) * self.limits.max_slot_size + last_slot_size
        if uploaded != expected:
            raise ContractRejection(
                "incomplete", f"{uploaded} of {expected} bytes uploaded"
            )
        conn.execute(
            "UPDATE upload_metadata SET status = ? WHERE app_id = ? AND identity = ?",
            (
                check_status_transition(_STATUS_BY_CODE[status], UploadStatus.FINISHED),
                call.app_id,
                call.identity,
            ),
        )

    def _started_metadata(self, conn: sqlite3.Connection, call: AppCall) -> tuple:
        row = self._metadata_row(conn, call.app_id, call.identity)
        if row is None:
            raise ContractRejection("not_started", "Identity has no upload record")
        if _STATUS_BY_CODE[row[2]] is not UploadStatus.STARTED:
            raise ContractRejection("finished", "Upload is already finished")
        return row

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _round(conn: sqlite3.Connection) -> int:
        (value,) = conn.execute(
            "SELECT value FROM chain_state WHERE key = 'round'"
        ).fetchone()
        return value

    @staticmethod
    def _app_address(app_id: int) -> str:
        return encode_address(hashlib.sha256(b"appID" + struct.pack(">Q", app_id)).digest())

    @staticmethod
    def _metadata_row(conn: sqlite3.Connection, app_id: int, identity: bytes) -> tuple | None:
        return conn.execute(
            "SELECT start_slot, end_slot, status, last_slot_size, uploaded_bytes "
            "FROM upload_metadata WHERE app_id = ? AND identity = ?",
            (app_id, identity),
        ).fetchone()

    @staticmethod
    def _balance(conn: sqlite3.Connection, address: str) -> int:
        row = conn.execute(
            "SELECT balance FROM accounts WHERE address = ?", (address,)
        ).fetchone()
        return row[0] if row else 0

    def _debit(self, conn: sqlite3.Connection, address: str, amount: int) -> None:
        balance = self._balance(conn, address)
        if balance < amount:
            raise ContractRejection(
                "overspend", f"{address} has {balance}, needs {amount}"
            )
        conn.execute(
            "UPDATE accounts SET balance = balance - ? WHERE address = ?", (amount, address)
        )

    @staticmethod
    def _credit(conn: sqlite3.Connection, address: str, amount: int) -> None:
        conn.execute(
            "INSERT INTO accounts (address, balance) VALUES (?, ?) "
            "ON CONFLICT(address) DO UPDATE SET balance = balance + excluded.balance",
            (address, amount),
        )
