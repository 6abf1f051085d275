"""Maps a transaction's log lines to an activity kind and actor.

Matching is substring search on program log text, so it is a heuristic: a
program upgrade that rewords or reorders its logs silently stops matching.
Swap in another TransactionClassifier if structured instruction data becomes
available.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .rpc_client import TransactionInfo


@dataclass(frozen=True)
class Classification:
    event_kind: str
    actor: str


@dataclass(frozen=True)
class LogMarker:
    """One instruction log pattern and the activity it maps to."""

    instruction: str
    event_kind: str
    qualifier: str | None = None

    @property
    def text(self) -> str:
        return f"Instruction: {self.instruction}"

    def matches(self, line: str) -> bool:
        if self.text not in line:
            return False
        return self.qualifier is None or self.qualifier in line


DEFAULT_MARKERS: tuple[LogMarker, ...] = (
    LogMarker("MintTicket", "TICKET_MINTED"),
    LogMarker("BuyTicket", "TICKET_PURCHASED"),
    LogMarker("UpdateTicket", "TICKET_SCANNED", qualifier="scanned"),
    LogMarker("UpgradeToCollectible", "TICKET_COLLECTIBLE"),
    LogMarker("CreateEvent", "EVENT_CREATED"),
)


class TransactionClassifier:
    """Strategy interface: return a Classification or None."""

    def classify(self, tx: TransactionInfo) -> Classification | None:
        raise NotImplementedError


class LogMarkerClassifier(TransactionClassifier):
    """Classifies by the first log line matching a known instruction marker."""

    def __init__(
        self,
        markers: tuple[LogMarker, ...] | list[LogMarker] = DEFAULT_MARKERS,
        logger: logging.Logger | None = None,
    ) -> None:
        self._markers = tuple(markers)
        self._logger = logger or logging.getLogger("levels.classifier")

    @property
    def markers(self) -> tuple[LogMarker, ...]:
        return self._markers

    @classmethod
    def from_program_definition(
        cls,
        definition: dict,
        logger: logging.Logger | None = None,
        markers: tuple[LogMarker, ...] = DEFAULT_MARKERS,
    ) -> LogMarkerClassifier:
        """Keep only markers whose instruction the program actually defines."""
        logger = logger or logging.getLogger("levels.classifier")
        known = {_normalize(i.get("name", "")) for i in definition.get("instructions") or []}
        kept = []
        for marker in markers:
            if _normalize(marker.instruction) in known:
                kept.append(marker)
            else:
                logger.warning(
                    "Program definition has no %s instruction; %s will not be classified",
                    marker.instruction, marker.event_kind,
                )
        return cls(kept, logger)

    def classify(self, tx: TransactionInfo) -> Classification | None:
        if tx.err is not None:
            return None

        event_kind = None
        for line in tx.log_messages:
            for marker in self._markers:
                if marker.matches(line):
                    event_kind = marker.event_kind
                    break
            if event_kind:
                break
        if event_kind is None:
            return None

        actor = next((key.pubkey for key in tx.account_keys if key.signer and key.pubkey), None)
        if actor is None:
            self._logger.debug("%s in %s has no signer, skipping", event_kind, tx.signature)
            return None
        return Classification(event_kind=event_kind, actor=actor)


def _normalize(name: str) -> str:
    return name.replace("_", "").lower()


def load_program_definition(paths: list[str], logger: logging.Logger) -> dict[str, Any] | None:
    """Load the first readable program IDL from ``paths``, or None."""
    for candidate in paths:
        path = Path(candidate)
        if not path.exists():
            continue
        try:
            with open(path, "r", encoding="utf-8") as f:
                definition = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read program definition %s: %s", path, e)
            continue
        if isinstance(definition, dict):
            logger.info("Found program definition at: %s", path)
            return definition
    return None
