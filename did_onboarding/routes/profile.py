"""
RYT DID Profile API
Profile summaries of minted DIDs.
"""

from typing import List, Optional
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from did_onboarding.config import config
from did_onboarding.database import get_did, get_dids_by_wallet


router = APIRouter()


class DIDProfile(BaseModel):
    """Profile summary of a minted DID."""
    did: str
    wallet_address: str
    token_id: Optional[str] = None
    tx_hash: Optional[str] = None
    tx_url: Optional[str] = None
    token_uri: Optional[str] = None
    verification_score: int
    is_demo: bool
    full_name: Optional[str] = None
    document_type: Optional[str] = None
    created_at: str


def to_profile(row: dict) -> DIDProfile:
    tx_hash = row.get('tx_hash')
    return DIDProfile(
        did=row['did'],
        wallet_address=row['wallet_address'],
        token_id=row.get('token_id'),
        tx_hash=tx_hash,
        tx_url=config.get_tx_url(tx_hash) if tx_hash else None,
        token_uri=row.get('token_uri'),
        verification_score=row['verification_score'],
        is_demo=bool(row['is_demo']),
        full_name=row.get('full_name'),
        document_type=row.get('document_type'),
        created_at=str(row['created_at'])
    )


@router.get("/profile/{did}", response_model=DIDProfile)
async def get_profile(did: str):
    """
    Get the profile summary of a minted DID.

    Args:
        did: DID string, e.g. ``did:ryt:42``
    """
    row = get_did(did)
    if not row:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"DID not found: {did}"
        )
    return to_profile(row)


@router.get("/profiles/wallet/{wallet_address}", response_model=List[DIDProfile])
async def get_wallet_profiles(wallet_address: str):
    """All DIDs minted for a wallet, newest first."""
    return [to_profile(row) for row in get_dids_by_wallet(wallet_address)]
