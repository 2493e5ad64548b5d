"""Decision ledger: durable JSONL store of cycle records."""

import json
import logging
import os
from dataclasses import asdict
from typing import Any, Dict, Iterable, List, Optional

from tradeloop.exceptions import LedgerWriteError
from tradeloop.models import CycleRecord


logger = logging.getLogger(__name__)


class DecisionLedger:
    """Stores one JSON line per cycle with its trade records nested inside.

    A record and its trades are serialized in full before anything touches
    the file and then written with a single append, so they land together or
    not at all. A torn trailing line from a crash is skipped on read.
    """

    def __init__(self, ledger_file: str, secrets: Optional[Iterable[str]] = None):
        """
        Initialize ledger with output file path.

        Args:
            ledger_file: Path to JSONL ledger file (created if it doesn't exist)
            secrets: Values that must never be written (API keys); redacted
                wherever they appear
        """
        self.ledger_file = ledger_file
        self._secrets = [s for s in (secrets or []) if s]

        ledger_dir = os.path.dirname(ledger_file)
        if ledger_dir and not os.path.exists(ledger_dir):
            os.makedirs(ledger_dir)

    def append(self, record: CycleRecord) -> None:
        """
        Append one cycle record atomically.

        Args:
            record: Complete cycle record including its trades

        Raises:
            LedgerWriteError: If the record cannot be serialized or written
        """
        try:
            line = self._sanitize(json.dumps(asdict(record), allow_nan=False)) + "\n"
        except (TypeError, ValueError) as e:
            raise LedgerWriteError(f"Cycle record {record.id} is not serializable: {e}") from e

        try:
            with open(self.ledger_file, "a", encoding="utf-8") as f:
                f.write(line)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            logger.error(f"Ledger write failed for cycle {record.id}: {e}")
            raise LedgerWriteError(f"Failed to write cycle record {record.id}: {e}") from e

        logger.info(f"Saved {len(record.tradings)} trading decision(s) to ledger (cycle {record.id})")

    def read_recent(self, limit: int = 20) -> List[Dict[str, Any]]:
        """
        Most recent cycle records, newest first.

        Args:
            limit: Maximum number of records to return

        Returns:
            List of cycle records as dictionaries
        """
        if limit <= 0 or not os.path.exists(self.ledger_file):
            return []

        records = []
        with open(self.ledger_file, "r", encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.warning(f"Skipping unreadable ledger line {line_number} in {self.ledger_file}")

        return list(reversed(records[-limit:]))

    def _sanitize(self, text: str) -> str:
        for secret in self._secrets:
            text = text.replace(secret, "[REDACTED]")
        return text
