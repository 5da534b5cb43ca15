"""
Install receipt persistence — atomic read/write of INSTALL_RECEIPT.json.

The receipt is written last, with write-to-temp-then-rename, so a keg
either has a complete receipt or none at all. ``formula test`` uses its
presence to tell a finished keg from an interrupted one.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path

from pydantic import ValidationError

from formula_runner.core.models.install import InstallReceipt

logger = logging.getLogger(__name__)


def load_receipt(path: Path) -> InstallReceipt | None:
    """Load a receipt, or None if it is missing or unreadable."""
    if not path.is_file():
        return None

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return InstallReceipt.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.warning("Cannot load install receipt %s: %s", path, e)
        return None


def save_receipt(receipt: InstallReceipt, path: Path) -> None:
    """Write a receipt atomically (temp file in the same directory, then rename)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(receipt.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".receipt_", suffix=".tmp")
    tmp = Path(tmp_name)
    try:
        with open(fd, "w", encoding="utf-8") as f:
            f.write(content)
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise
    logger.debug("Install receipt written to %s", path)
