"""
RYT DID Wizard Step Handlers
Each handler issues one collaborator request for the step the session is on,
then records the outcome through the session's mutators.

Collaborator failures propagate as OnboardingError subclasses. Extraction
and minting failures are replaced with flagged demo data while
ALLOW_DEMO_FALLBACK is enabled.
"""

import functools
import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from did_onboarding.config import config
from did_onboarding.database import save_did
from did_onboarding.errors import (
    CaptchaFailed, ExtractionError, MintError, NotConnected, StepMismatch, UploadError
)
from did_onboarding.services.captcha import captcha_verifier
from did_onboarding.services.encryption import ALGORITHM, compute_record_hash, get_encryption_service
from did_onboarding.services.extraction import MOCK_IDENTITY, extraction_service
from did_onboarding.services.ipfs import ipfs_service
from did_onboarding.services.minting import minting_service
from did_onboarding.services.wallet import connect_wallet
from did_onboarding.state_machine import DID_PREFIX, DIDSession, Step, score_for

logger = logging.getLogger(__name__)


IMAGE_KEYS = ("imageData", "ipfsUrl", "fileName", "fileType", "fileSize")

# Steps that offer the demo-data shortcut
SKIPPABLE_STEPS = (Step.IMAGE_SELECTION, Step.LIVENESS_VERIFICATION)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def require_step(session: DIDSession, step: Step) -> None:
    if session.current_step != step:
        raise StepMismatch(step, session.current_step)


def serialized(handler):
    """Run a step handler while holding the session's handler lock."""
    @functools.wraps(handler)
    def wrapper(session: DIDSession, *args, **kwargs):
        with session.handler_lock:
            return handler(session, *args, **kwargs)
    return wrapper


# ============ Navigation ============

@serialized
def next_step(session: DIDSession) -> None:
    """Advance, stamping the completion time on arrival at COMPLETED."""
    session.advance()
    if session.current_step == Step.COMPLETED and not session.get("completionTimestamp"):
        session.update_data({"finalizationComplete": True, "completionTimestamp": _now()})


@serialized
def previous_step(session: DIDSession) -> None:
    session.retreat()


@serialized
def skip_identity_verification(session: DIDSession) -> None:
    """Take the demo-data shortcut. Only offered while capturing the ID image or selfie."""
    if session.current_step not in SKIPPABLE_STEPS:
        raise StepMismatch(SKIPPABLE_STEPS, session.current_step)
    session.skip_identity_verification()


# ============ Wallet / CAPTCHA ============

@serialized
def register_wallet(
    session: DIDSession,
    address: Optional[str],
    signature: Optional[str] = None,
    message: Optional[str] = None
) -> str:
    """
    Record the connected wallet. Accepted on any step; on the wallet step it
    completes the step and moves on automatically.
    """
    wallet = connect_wallet(address, signature, message)
    session.update_data({"walletAddress": wallet})

    if session.current_step == Step.WALLET_CONNECTION:
        session.mark_step_completed(True)
        session.advance()
    return wallet


@serialized
def complete_captcha(session: DIDSession, token: str, remote_ip: str = None) -> None:
    require_step(session, Step.RECAPTCHA)

    if not captcha_verifier.verify(token, remote_ip):
        raise CaptchaFailed("CAPTCHA verification failed")

    session.set_verification_score(score_for(Step.RECAPTCHA, session.skipped_identity_verification))
    session.update_data({"captchaCompleted": True})
    session.mark_step_completed(True)


# ============ Image selection / liveness ============

@serialized
def upload_id_image(session: DIDSession, content: bytes, filename: str, content_type: str) -> str:
    """Pin the ID photo and complete the image selection step."""
    require_step(session, Step.IMAGE_SELECTION)

    result = ipfs_service.upload_file(content, filename, content_type)
    session.update_data({
        "ipfsUrl": result.gateway_url,
        "fileName": filename,
        "fileType": content_type,
        "fileSize": len(content)
    })
    session.mark_step_completed(True)
    return result.gateway_url


@serialized
def change_id_image(session: DIDSession) -> None:
    require_step(session, Step.IMAGE_SELECTION)
    session.update_data({key: None for key in IMAGE_KEYS})
    session.mark_step_completed(False)


@serialized
def capture_selfie(session: DIDSession, content: bytes, filename: str, content_type: str) -> str:
    """Pin the liveness selfie and complete the liveness step."""
    require_step(session, Step.LIVENESS_VERIFICATION)

    result = ipfs_service.upload_file(content, filename, content_type)
    session.update_data({
        "livenessImage": result.gateway_url,
        "livenessVerified": True,
        "livenessTimestamp": _now()
    })
    session.mark_step_completed(True)
    return result.gateway_url


@serialized
def retake_selfie(session: DIDSession) -> None:
    require_step(session, Step.LIVENESS_VERIFICATION)
    session.update_data({
        "livenessImage": None,
        "livenessVerified": False,
        "livenessTimestamp": None
    })
    session.mark_step_completed(False)


# ============ Extraction / verification ============

@serialized
def extract_identity(session: DIDSession) -> Dict[str, Any]:
    """Read identity fields off the uploaded ID image."""
    require_step(session, Step.EXTRACTION)

    if session.get("extractedInfo"):
        session.mark_step_completed(True)
        return session.get("documentDetails") or {}

    patch: Dict[str, Any] = {}
    try:
        fields = extraction_service.extract(session.get("ipfsUrl") or "")
    except ExtractionError as e:
        if not config.ALLOW_DEMO_FALLBACK:
            logger.error("Identity extraction failed: %s", e)
            raise
        logger.warning("Identity extraction failed, using demo record: %s", e)
        fields = MOCK_IDENTITY
        patch.update({"extractionFallback": True, "extractionError": str(e)})

    details = fields.model_dump()
    patch.update({
        "extractedInfo": True,
        "fullName": fields.fullName or MOCK_IDENTITY.fullName,
        "documentNumber": fields.idNumber or MOCK_IDENTITY.idNumber,
        "dateOfBirth": fields.dateOfBirth or MOCK_IDENTITY.dateOfBirth,
        "documentType": fields.metadata.get("documentType") or MOCK_IDENTITY.metadata["documentType"],
        "documentDetails": details,
        "rawExtractionText": fields.rawText or ""
    })
    session.update_data(patch)
    session.mark_step_completed(True)
    return details


def _demo_details(demo: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "fullName": f"{demo.get('firstName', '')} {demo.get('lastName', '')}".strip(),
        "dateOfBirth": demo.get("dateOfBirth", ""),
        "gender": "",
        "idNumber": demo.get("documentNumber", ""),
        "metadata": {
            "documentType": demo.get("documentType"),
            "nationality": demo.get("nationality")
        }
    }


@serialized
def verify_identity(session: DIDSession) -> Dict[str, Any]:
    """Confirm the identity record that will be bound to the DID."""
    require_step(session, Step.VERIFICATION)

    details = session.get("documentDetails")
    if not details and session.get("isDemo"):
        details = _demo_details(session.get("demoData") or {})
    details = details or {}

    session.update_data({
        "verifiedInfo": True,
        "fullName": details.get("fullName"),
        "documentNumber": details.get("idNumber"),
        "documentType": (details.get("metadata") or {}).get("documentType"),
        "verifiedDetails": details,
        "verificationTimestamp": _now()
    })
    session.mark_step_completed(True)
    return details


# ============ Minting ============

def build_token_metadata(session: DIDSession) -> Dict[str, Any]:
    """Token metadata document pinned before minting."""
    identity = session.get("verifiedDetails") or session.get("documentDetails") or {}
    is_demo = bool(session.get("isDemo"))

    properties: Dict[str, Any] = {
        "walletAddress": session.get("walletAddress"),
        "selfieImage": session.get("livenessImage"),
        "identityHash": compute_record_hash(identity),
        "createdAt": _now()
    }

    encryption = get_encryption_service()
    if encryption is not None:
        properties["encryptedIdentity"] = encryption.seal_record(identity)
        properties["encryption"] = {"algorithm": ALGORITHM, "iv_included": True, "padding": "PKCS7"}

    return {
        "name": "RYT Decentralized Identifier",
        "description": "Identity token minted by the RYT DID onboarding wizard",
        "image": session.get("ipfsUrl") or config.TOKEN_URI,
        "attributes": [
            {"trait_type": "Verification Score", "value": session.verification_score},
            {"trait_type": "Identity Verification", "value": "skipped" if is_demo else "completed"}
        ],
        "properties": properties
    }


def _pin_metadata(session: DIDSession) -> str:
    metadata = build_token_metadata(session)
    wallet = session.get("walletAddress")
    try:
        return ipfs_service.upload_json(metadata, pin_name=f"did-metadata-{wallet}").gateway_url
    except UploadError as e:
        logger.warning("Token metadata could not be pinned, using fallback URI: %s", e)
        return config.TOKEN_URI


@serialized
def mint_did(session: DIDSession) -> Dict[str, Any]:
    """Mint the DID token and store the resulting profile."""
    require_step(session, Step.MINTING)

    if session.get("mintingComplete"):
        session.mark_step_completed(True)
        return {"tokenId": session.get("didIdentifier"), "txHash": session.get("transactionHash")}

    wallet = session.get("walletAddress")
    if not wallet:
        raise NotConnected("No wallet address found")

    token_uri = _pin_metadata(session)
    patch: Dict[str, Any] = {}
    try:
        result = minting_service.mint(token_uri)
        tx_hash = result.tx_hash
        token_id = result.token_id or result.tx_hash
    except MintError as e:
        if not config.ALLOW_DEMO_FALLBACK:
            logger.error("Minting failed: %s", e)
            raise
        logger.warning("Minting failed, using demo transaction: %s", e)
        tx_hash = "0x" + secrets.token_hex(32)
        # Must be unique: the DID keys the profile table
        token_id = secrets.token_hex(16)
        patch.update({"mintingFallback": True, "mintingError": str(e)})

    did = f"{DID_PREFIX}{token_id}"
    stored = save_did(
        did=did,
        wallet_address=wallet,
        token_id=token_id,
        tx_hash=tx_hash,
        token_uri=token_uri,
        verification_score=session.verification_score,
        is_demo=bool(session.get("isDemo") or patch.get("mintingFallback")),
        full_name=session.get("fullName"),
        document_type=session.get("documentType")
    )
    if not stored:
        logger.error("DID %s is already registered to another profile", did)
        raise MintError(f"DID {did} is already registered")

    patch.update({
        "didIdentifier": token_id,
        "mintingComplete": True,
        "mintingTimestamp": _now(),
        "transactionHash": tx_hash,
        "tokenURI": token_uri
    })
    session.update_data(patch)
    session.mark_step_completed(True)

    logger.info("Minted %s (tx %s)", did, tx_hash)
    return {"did": did, "tokenId": token_id, "txHash": tx_hash, "tokenURI": token_uri}
