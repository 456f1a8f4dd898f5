# otohub_billing/services/proof_storage.py
"""
Payment proof storage.

Proof files are written and resolved to a URL before any database
transaction starts; the invoice workflow only ever sees the URL.
"""
import logging
import os
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Optional

from otohub_billing.core.config import settings
from otohub_billing.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "application/pdf": ".pdf",
}


class ProofStorage(ABC):
    """Interface for wherever proof-of-transfer files end up"""

    @abstractmethod
    async def save(self, tenant_id: str, invoice_id: str, content: bytes,
                   content_type: Optional[str], filename: Optional[str] = None) -> str:
        """Store the file and return the URL the invoice keeps"""


class LocalProofStorage(ProofStorage):
    """Writes proofs under a local directory served at ``base_url``"""

    def __init__(
        self,
        upload_dir: str = settings.PROOF_UPLOAD_DIR,
        base_url: str = settings.PROOF_BASE_URL,
        max_bytes: int = settings.PROOF_MAX_BYTES,
        allowed_content_types: Iterable[str] = tuple(settings.PROOF_ALLOWED_CONTENT_TYPES),
    ):
        self.upload_dir = Path(upload_dir)
        self.base_url = base_url.rstrip("/")
        self.max_bytes = max_bytes
        self.allowed_content_types = set(allowed_content_types)

    def validate(self, content: bytes, content_type: Optional[str]) -> None:
        if not content:
            raise ValidationError("Payment proof file is empty")
        if len(content) > self.max_bytes:
            raise ValidationError(
                "Payment proof file is too large",
                details={"max_bytes": self.max_bytes, "size": len(content)},
            )
        if content_type not in self.allowed_content_types:
            raise ValidationError(
                f"Unsupported payment proof type: {content_type}",
                details={"allowed": sorted(self.allowed_content_types)},
            )

    async def save(self, tenant_id: str, invoice_id: str, content: bytes,
                   content_type: Optional[str], filename: Optional[str] = None) -> str:
        self.validate(content, content_type)

        extension = _EXTENSIONS.get(content_type) or os.path.splitext(filename or "")[1]
        stored_name = f"{invoice_id}-{uuid.uuid4().hex}{extension}"
        target_dir = self.upload_dir / tenant_id
        target_dir.mkdir(parents=True, exist_ok=True)

        with open(target_dir / stored_name, "wb") as f:
            f.write(content)

        logger.info(
            "Stored payment proof %s (%d bytes)",
            stored_name,
            len(content),
            extra={"tenant_id": tenant_id, "invoice_id": invoice_id},
        )
        return f"{self.base_url}/{tenant_id}/{stored_name}"
