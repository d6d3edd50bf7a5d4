"""
Genesis mutation pipeline.

Edits are applied to the genesis file of the primary node (node0) in batches.
A batch is all-or-nothing: if one edit fails, or leaves a document that is not
valid JSON, the file is restored byte for byte and nothing is distributed.
After a successful batch the document is copied to every other node.
"""

from __future__ import annotations

import json
import logging
import shutil
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from .. import metrics
from ..binary import NodeBinary
from ..config import HarnessConfig
from ..exceptions import GenesisEditError, GenesisFormatError, GenesisFrozenError
from .models import GenesisDocument
from .mutators import JsonMutator

logger = logging.getLogger(__name__)


def genesis_file(home: Path) -> Path:
    """Location of the genesis document inside a node home."""
    return home / "config" / "genesis.json"


class GenesisMutator:
    """Applies ordered edits to the cluster's genesis document."""

    def __init__(self, config: HarnessConfig, binary: NodeBinary) -> None:
        self.config = config
        self.binary = binary
        self.frozen = False
        """Set while the chain runs on the current document. Edits are refused."""

    @property
    def primary_home(self) -> Path:
        """Home of the node whose genesis file is edited."""
        return self.config.node_home(0)

    @property
    def path(self) -> Path:
        """Genesis file of the primary node."""
        return genesis_file(self.primary_home)

    def freeze(self) -> None:
        """Refuse further edits until ``unfreeze``."""
        self.frozen = True

    def unfreeze(self) -> None:
        self.frozen = False

    def modify_cli(self, *edit_commands: Sequence[str]) -> None:
        """
        Run genesis edit commands in order against the primary node's home.

        Each edit sees the effects of the previous ones.

        Raises:
            GenesisFrozenError: If the document is frozen.
            GenesisEditError: For the first failing edit. The batch was rolled back.
        """
        self._check_not_frozen()
        if not edit_commands:
            return

        snapshot = self.path.read_bytes()
        for position, args in enumerate(edit_commands):
            try:
                result = self.binary.exec_offline(list(args), self.primary_home)
            except Exception:
                self._rollback(snapshot)
                raise

            detail: str | None = None
            if result.ok:
                try:
                    json.loads(self.path.read_bytes())
                except (OSError, json.JSONDecodeError) as e:
                    detail = f"left an unreadable genesis document: {e}"
            else:
                detail = f"exit code {result.exit_code}"

            if detail is not None:
                self._rollback(snapshot)
                raise GenesisEditError(
                    result.argv,
                    result.exit_code,
                    position=position,
                    stdout=result.stdout,
                    stderr=result.stderr,
                    detail=detail,
                )

            logger.info("Genesis edit #%d applied: %s", position, " ".join(args))

        self._commit()

    def modify_json(self, *mutators: JsonMutator) -> None:
        """
        Apply in-process edits to the parsed genesis document.

        Each mutator edits the document in place or returns a replacement.

        Raises:
            GenesisFrozenError: If the document is frozen.
            GenesisEditError: If a mutator raises. The file is left untouched.
            GenesisFormatError: If the current file is not valid JSON.
        """
        self._check_not_frozen()
        if not mutators:
            return

        doc = self._load()
        for position, mutate in enumerate(mutators):
            name = getattr(mutate, "__name__", repr(mutate))
            try:
                replaced = mutate(doc)
            except Exception as e:
                metrics.genesis_edits_total.labels(outcome="rolled_back").inc()
                raise GenesisEditError(
                    [name], 0, position=position, detail=f"{type(e).__name__}: {e}"
                ) from e
            if replaced is not None:
                doc = replaced
            logger.info("Genesis edit #%d applied: %s", position, name)

        self.path.write_text(json.dumps(doc, indent=2) + "\n", encoding="utf-8")
        self._commit()

    def read_json(self) -> str:
        """Current genesis document of the primary node, as raw text."""
        return self.path.read_text(encoding="utf-8")

    def read(self) -> GenesisDocument:
        """
        Current genesis document as a typed view.

        Raises:
            GenesisFormatError: If the document does not match the model.
        """
        return GenesisDocument.from_json(self.read_json())

    def distribute(self) -> None:
        """Copy the primary genesis file to every other node."""
        for index in range(1, self.config.nodes_count):
            target = genesis_file(self.config.node_home(index))
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(self.path, target)
        logger.debug("Genesis copied to %d node(s)", self.config.nodes_count - 1)

    def _check_not_frozen(self) -> None:
        if self.frozen:
            raise GenesisFrozenError(
                "genesis cannot change after the chain was started; call reset_chain() first"
            )

    def _load(self) -> dict[str, Any]:
        try:
            doc = json.loads(self.path.read_bytes())
        except json.JSONDecodeError as e:
            raise GenesisFormatError("", f"{self.path} is not valid JSON: {e}") from e
        if not isinstance(doc, dict):
            raise GenesisFormatError("", f"{self.path} does not hold a JSON object")
        return doc

    def _rollback(self, snapshot: bytes) -> None:
        self.path.write_bytes(snapshot)
        metrics.genesis_edits_total.labels(outcome="rolled_back").inc()
        logger.warning("Genesis edit batch failed, restored %s", self.path)

    def _commit(self) -> None:
        self.distribute()
        metrics.genesis_edits_total.labels(outcome="applied").inc()
