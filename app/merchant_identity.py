# app/merchant_identity.py

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Union

from sqlalchemy.orm import Session, joinedload

from models.merchants import Merchant

_CANONICAL_RE = re.compile(r"^[0-9a-fA-F]{24}$")
_LEGACY_RE = re.compile(r"^\d+$")
_WS_RE = re.compile(r"\s+")

UNRESOLVED_PREFIX = "name:"
UNNAMED_MERCHANT = "Unnamed Merchant"


# ----------------------------------------------------
# Riferimento merchant: variante con tag
# ----------------------------------------------------
@dataclass(frozen=True)
class CanonicalId:
    value: str


@dataclass(frozen=True)
class LegacyId:
    value: int


@dataclass(frozen=True)
class NameRef:
    value: str


MerchantRef = Union[CanonicalId, LegacyId, NameRef]


def parse_merchant_ref(raw: Union[str, int, None]) -> MerchantRef:
    if isinstance(raw, bool):
        raw = str(raw)
    if isinstance(raw, int):
        return LegacyId(raw)

    text = (raw or "").strip()
    if _CANONICAL_RE.match(text):
        return CanonicalId(text.lower())
    if _LEGACY_RE.match(text):
        return LegacyId(int(text))
    return NameRef(text)


def normalize_name(name: Optional[str]) -> str:
    """Confronto nomi: case-insensitive, spazi compressi."""
    return _WS_RE.sub(" ", (name or "").strip()).casefold()


# ----------------------------------------------------
# Directory merchant (snapshot in memoria)
# ----------------------------------------------------
@dataclass(frozen=True)
class MerchantInfo:
    id: str
    name: str
    legacy_id: Optional[int] = None
    owner_name: Optional[str] = None
    owner_email: Optional[str] = None
    location: Optional[str] = None


class MerchantDirectory:
    """
    Snapshot della directory merchant, caricato una volta per report.
    Le ricerche sono pure: nessuna query durante la risoluzione.
    """

    def __init__(self, merchants: Iterable[MerchantInfo] = ()):
        self._by_id: Dict[str, MerchantInfo] = {}
        self._by_legacy: Dict[int, MerchantInfo] = {}
        self._by_name: Dict[str, List[MerchantInfo]] = {}
        for m in merchants:
            self.add(m)

    def add(self, merchant: MerchantInfo) -> None:
        self._by_id[merchant.id.lower()] = merchant
        if merchant.legacy_id is not None:
            self._by_legacy[merchant.legacy_id] = merchant
        self._by_name.setdefault(merchant.name, []).append(merchant)

    @classmethod
    def from_session(cls, db: Session) -> "MerchantDirectory":
        rows = db.query(Merchant).options(joinedload(Merchant.owner)).all()
        return cls(
            MerchantInfo(
                id=m.id,
                name=m.name,
                legacy_id=m.legacy_id,
                owner_name=m.owner.name if m.owner else None,
                owner_email=m.owner.email if m.owner else None,
                location=m.location,
            )
            for m in rows
        )

    def by_id(self, merchant_id: str) -> Optional[MerchantInfo]:
        return self._by_id.get(merchant_id.lower())

    def by_legacy_id(self, legacy_id: int) -> Optional[MerchantInfo]:
        return self._by_legacy.get(legacy_id)

    def by_name(self, name: str) -> Optional[MerchantInfo]:
        # i nomi non sono univoci: se ce n'è più di uno non scegliamo
        matches = self._by_name.get(name, [])
        if len(matches) == 1:
            return matches[0]
        return None

    def __len__(self) -> int:
        return len(self._by_id)


# ----------------------------------------------------
# Risoluzione
# ----------------------------------------------------
@dataclass(frozen=True)
class Resolution:
    merchant: Optional[MerchantInfo]
    display_name: str
    matched_by: Optional[str] = None  # "id" | "legacy_id" | "name"

    @property
    def resolved(self) -> bool:
        return self.merchant is not None

    @property
    def merchant_key(self) -> str:
        if self.merchant is not None:
            return self.merchant.id
        return unresolved_key(self.display_name)


def unresolved_key(display_name: str) -> str:
    return UNRESOLVED_PREFIX + normalize_name(display_name)


def resolve_merchant(
    directory: MerchantDirectory,
    raw_ref: Union[str, int, None],
    display_name: Optional[str] = None,
) -> Resolution:
    """
    Ordine di risoluzione (vince il primo):
    1. ID canonico esistente
    2. vecchio ID numerico esistente
    3. nome esatto (case-sensitive) se presente
    4. non risolto: si tiene il nome migliore disponibile
    Non solleva mai eccezioni.
    """
    ref = parse_merchant_ref(raw_ref)
    name = (display_name or "").strip()

    if isinstance(ref, CanonicalId):
        found = directory.by_id(ref.value)
        if found:
            return Resolution(found, found.name, "id")
    elif isinstance(ref, LegacyId):
        found = directory.by_legacy_id(ref.value)
        if found:
            return Resolution(found, found.name, "legacy_id")

    candidate = name or (ref.value if isinstance(ref, NameRef) else "")
    if candidate:
        found = directory.by_name(candidate)
        if found:
            return Resolution(found, found.name, "name")

    fallback = name or (str(raw_ref).strip() if raw_ref is not None else "") or UNNAMED_MERCHANT
    return Resolution(None, fallback)
