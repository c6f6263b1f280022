"""
Payment proof file storage.

The ledger keeps proof metadata in the database and hands file bytes to a
``ProofStorage``. ``LocalProofStorage`` writes under a directory on disk,
one sub-directory per payment record.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable
from uuid import UUID, uuid4

from rental_kernel.logging_config import get_logger

logger = get_logger("modules.billing.proofs")

DEFAULT_PROOF_ROOT = Path("uploads") / "payment-proofs"


@runtime_checkable
class ProofStorage(Protocol):
    """Where proof files live, keyed by payment record id."""

    def save(self, payment_id: UUID, file_name: str, content: bytes) -> str:
        """Store ``content`` and return the path to record for it."""
        ...

    def delete(self, file_path: str) -> None:
        """Remove a stored file. Missing files are ignored."""
        ...


class LocalProofStorage:
    """Stores proofs as ``<root>/<payment_id>/<uuid>_<file_name>``."""

    def __init__(self, root: Path | str = DEFAULT_PROOF_ROOT):
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def save(self, payment_id: UUID, file_name: str, content: bytes) -> str:
        safe_name = Path(file_name).name or "proof"
        target_dir = self._root / str(payment_id)
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / f"{uuid4().hex}_{safe_name}"
        target.write_bytes(content)
        logger.debug("proof_file_saved", extra={
            "payment_id": str(payment_id),
            "file_path": str(target),
            "size": len(content),
        })
        return str(target)

    def delete(self, file_path: str) -> None:
        Path(file_path).unlink(missing_ok=True)
        logger.debug("proof_file_deleted", extra={"file_path": file_path})
