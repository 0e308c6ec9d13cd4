"""
Standards Registry
==================

Tracks versioned standard families (e.g. CIP-005-3, CIP-005-6) seen in the
corpus and steers free-text queries toward the latest version.

    registry.register("CIP-005-3.pdf")
    registry.register("CIP-005-6.pdf")
    registry.normalize_query("What does CIP-005 require?")
    # -> "What does CIP-005 (CIP-005-6) require?"
"""

import logging
import re
import threading
from dataclasses import replace
from typing import Dict, List, Optional, Set, Tuple

from .models import StandardEntry, StandardRef

logger = logging.getLogger(__name__)

FAMILY_PREFIX = "CIP"
FAMILY_WIDTH = 3

# Family id then version, separators optional: "CIP-005-6", "cip_005_6",
# "CIP 5-6", "CIP0056". Without a separator the family id must be 3 digits.
VERSIONED_PATTERN = re.compile(
    r"(?<![a-z])cip[\s_-]?(?:(\d{3})[\s_-]?|(\d{1,2})[\s_-])(\d{1,2})(?!\d)",
    re.IGNORECASE,
)

# A family mention with no version after it. Anything VERSIONED_PATTERN
# reads as a version ("CIP 005 6") is excluded.
BARE_PATTERN = re.compile(
    r"(?<![a-z])cip[\s_-]?(\d{1,3})(?!\d)(?![_-]\d)(?!\s\d{1,2}(?!\d))(?!\s*\(\s*cip)",
    re.IGNORECASE,
)


def format_base(family_number: str) -> str:
    """Zero-pad the family number: "5" -> "CIP-005"."""
    return f"{FAMILY_PREFIX}-{int(family_number):0{FAMILY_WIDTH}d}"


class StandardsRegistry:
    """
    Registry of standard families and their versions.

    latest_version only moves up on register(); release() is the only
    operation that can shrink a family, when the last document carrying
    a version is removed.
    """

    def __init__(self):
        self._entries: Dict[str, StandardEntry] = {}
        # (base, version) -> document keys that registered it
        self._owners: Dict[Tuple[str, int], Set[str]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def parse(document_name: str) -> Optional[StandardRef]:
        """Extract the standard identifier from a document name, if any."""
        match = VERSIONED_PATTERN.search(document_name or "")
        if not match:
            return None
        family = match.group(1) or match.group(2)
        return StandardRef(base=format_base(family), version=int(match.group(3)))

    def register(self, document_name: str, document_key: Optional[str] = None) -> Optional[StandardRef]:
        """
        Register the standard a document represents.

        Args:
            document_name: Filename or title carrying the identifier
            document_key: Owning document, used by release()

        Returns:
            The parsed StandardRef, or None if the name is not a standard
        """
        ref = self.parse(document_name)
        if ref is None:
            return None

        with self._lock:
            entry = self._entries.setdefault(ref.base, StandardEntry(base=ref.base))
            entry.versions.add(ref.version)
            if ref.version > entry.latest_version:
                entry.latest_version = ref.version
            self._owners.setdefault((ref.base, ref.version), set()).add(document_key or document_name)

        logger.debug(f"Registered {ref.versioned_id} (latest {ref.base}-{entry.latest_version})")
        return ref

    def release(self, document_key: str) -> List[StandardRef]:
        """
        Drop a document's registrations, pruning versions nobody else holds.

        Returns:
            Versions removed from the registry
        """
        removed: List[StandardRef] = []
        with self._lock:
            for (base, version), owners in list(self._owners.items()):
                if document_key not in owners:
                    continue
                owners.discard(document_key)
                if owners:
                    continue

                del self._owners[(base, version)]
                entry = self._entries[base]
                entry.versions.discard(version)
                removed.append(StandardRef(base=base, version=version))

                if entry.versions:
                    entry.latest_version = max(entry.versions)
                else:
                    del self._entries[base]

        if removed:
            logger.info(f"Released {', '.join(r.versioned_id for r in removed)}")
        return removed

    def get(self, base: str) -> Optional[StandardEntry]:
        """Copy of the entry for a family base such as "CIP-005"."""
        with self._lock:
            entry = self._entries.get(base)
            return replace(entry, versions=set(entry.versions)) if entry else None

    def entries(self) -> List[StandardEntry]:
        with self._lock:
            return [replace(e, versions=set(e.versions)) for e in self._entries.values()]

    def normalize_query(self, text: str) -> str:
        """
        Append the latest versioned id after every bare family mention.

        Mentions that already carry a version, and families the registry
        does not know, are left as typed.
        """
        if not text:
            return text

        with self._lock:
            latest = {base: entry.latest_id for base, entry in self._entries.items()}

        if not latest:
            return text

        def _rewrite(match: "re.Match[str]") -> str:
            versioned = latest.get(format_base(match.group(1)))
            if versioned is None:
                return match.group(0)
            return f"{match.group(0)} ({versioned})"

        return BARE_PATTERN.sub(_rewrite, text)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
