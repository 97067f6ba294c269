"""Tenant (connected seller account) model."""

from dataclasses import asdict, dataclass


@dataclass
class Tenant:
    tenant_id: int | str  # marketplace user id; compare via str()
    display_name: str = ""
    access_token: str = ""
    refresh_token: str = ""

    @property
    def key(self) -> str:
        return str(self.tenant_id)

    @classmethod
    def from_record(cls, record: dict) -> "Tenant":
        return cls(
            tenant_id=record["tenant_id"],
            display_name=record.get("display_name", ""),
            access_token=record.get("access_token", ""),
            refresh_token=record.get("refresh_token", ""),
        )

    def to_record(self) -> dict:
        return asdict(self)


def normalize_tenants(raw) -> list[dict]:
    """Keep well-formed tenant records only.

    Older documents used ``user_id``/``store_name``; both spellings load.
    Records without an id or a refresh token can never authenticate and are
    dropped.
    """
    records = raw if isinstance(raw, list) else []
    out = []
    for r in records:
        if not isinstance(r, dict):
            continue
        tenant_id = r.get("tenant_id", r.get("user_id"))
        refresh_token = r.get("refresh_token") or ""
        if not tenant_id or not refresh_token:
            continue
        out.append({
            "tenant_id": tenant_id,
            "display_name": r.get("display_name", r.get("store_name")) or "",
            "access_token": r.get("access_token") or "",
            "refresh_token": refresh_token,
        })
    return out
