"""
InstallReceipt — the record stamped into every finished keg.

Written as ``INSTALL_RECEIPT.json`` at the keg root once every phase of
``install`` has succeeded. Its presence is what marks a keg as complete.

The receipt is part of the keg, so it only holds what follows from the
recipe and the build: two installs from the same inputs write the same
bytes. When and under which operation id a keg was built lives in the
audit ledger instead.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class InstallReceipt(BaseModel):
    """What was installed, from where, and what the run did to it."""

    schema_version: int = 2

    name: str
    version: str
    source_url: str = ""
    source_sha256: str = ""
    prefix: str = ""

    patch_status: str = ""          # applied, already_applied, none
    steps_run: int = 0
    pruned: list[str] = Field(default_factory=list)
    linked: int = 0
