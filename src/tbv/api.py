from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException

from tbv.errors import DescriptorError
from tbv.verifier import Verifier

app = FastAPI(title="tbv", version="0.4.0")


def get_verifier() -> Verifier:
    return Verifier()


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/verify/{descriptor:path}")
async def verify(descriptor: str) -> dict[str, Any]:
    """Run one verification; the response carries every stage even when it fails."""
    try:
        result = await get_verifier().verify(descriptor)
    except DescriptorError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return result.as_dict()
