from __future__ import annotations

from fastapi import Header


def get_owner_id(x_owner_id: str = Header(alias="X-Owner-Id", min_length=1, max_length=64)) -> str:
    return x_owner_id.strip()
