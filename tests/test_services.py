"""Tests for the collaborator clients, run against mocked transports."""

import json
from unittest.mock import MagicMock

import httpx
import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from did_onboarding.config import config
from did_onboarding.errors import ExtractionError, MintError, NotConnected, UploadError
from did_onboarding.services.captcha import CaptchaVerifier
from did_onboarding.services.encryption import (
    EncryptionService, compute_record_hash, compute_sha256, get_encryption_service
)
from did_onboarding.services.extraction import VisionExtractionService, parse_identity
from did_onboarding.services.ipfs import IPFSService
from did_onboarding.services.minting import MintingService, TRANSFER_TOPIC, token_id_from_receipt
from did_onboarding.services.wallet import connect_wallet

TEST_KEY = "0x" + "11" * 32
CONTRACT = "0x66332e60b24BB4C729A2Be07Ab733C26242A5aAD"


# ============ IPFS ============

def test_ipfs_upload_file_pins_with_jwt():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = request.read()
        return httpx.Response(200, json={"IpfsHash": "QmPinned", "PinSize": 3})

    service = IPFSService(pinata_jwt="jwt-token", gateway="https://gw/ipfs/",
                          transport=httpx.MockTransport(handler))
    result = service.upload_file(b"abc", "id.png", "image/png")

    assert seen["url"] == IPFSService.PINATA_PIN_FILE_URL
    assert seen["auth"] == "Bearer jwt-token"
    assert b"id.png" in seen["body"]
    assert result.cid == "QmPinned"
    assert result.gateway_url == "https://gw/ipfs/QmPinned"
    assert result.demo is False


def test_ipfs_upload_json_uses_key_pair():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["pinata_api_key"] == "key"
        body = json.loads(request.read())
        assert body["pinataMetadata"]["name"] == "did-metadata"
        assert body["pinataContent"] == {"name": "token"}
        return httpx.Response(200, json={"IpfsHash": "bafyMeta"})

    service = IPFSService(pinata_api_key="key", pinata_secret_key="secret",
                          transport=httpx.MockTransport(handler))

    assert service.upload_json({"name": "token"}, pin_name="did-metadata").cid == "bafyMeta"


def test_ipfs_error_response_raises():
    def handler(request):
        return httpx.Response(401, json={"error": {"reason": "INVALID", "details": "bad key"}})

    service = IPFSService(pinata_jwt="jwt", transport=httpx.MockTransport(handler))

    with pytest.raises(UploadError, match="bad key"):
        service.upload_file(b"abc", "id.png", "image/png")


def test_ipfs_connection_failure_raises():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    service = IPFSService(pinata_jwt="jwt", transport=httpx.MockTransport(handler))

    with pytest.raises(UploadError, match="Upload failed"):
        service.upload_file(b"abc", "id.png", "image/png")


def test_ipfs_demo_mode_returns_placeholder():
    service = IPFSService()

    result = service.upload_file(b"abc", "id.png", "image/png")

    assert result.demo is True
    assert result.cid == config.DEMO_IMAGE_CID
    assert result.size_bytes == 3


def test_ipfs_refuses_empty_file():
    with pytest.raises(UploadError):
        IPFSService().upload_file(b"", "id.png", "image/png")


# ============ Vision extraction ============

def test_parse_identity_plain_json():
    fields = parse_identity(json.dumps({
        "fullName": "Jane Roe",
        "dateOfBirth": "1985-05-05",
        "gender": None,
        "idNumber": "X1",
        "metadata": {"documentType": "Passport"}
    }))

    assert fields.fullName == "Jane Roe"
    assert fields.gender == ""
    assert fields.metadata["documentType"] == "Passport"
    assert fields.confidence == pytest.approx(0.92)


def test_parse_identity_inside_code_fence():
    reply = 'Here you go:\n```json\n{"fullName": "Jane Roe", "idNumber": "X1"}\n```'

    fields = parse_identity(reply)

    assert fields.idNumber == "X1"
    assert fields.metadata == {"fileType": "image", "fileSize": "unknown"}


@pytest.mark.parametrize("reply", ["", "no json here", "[1, 2]"])
def test_parse_identity_rejects_unusable_replies(reply):
    with pytest.raises(ExtractionError):
        parse_identity(reply)


def test_extract_calls_chat_completions():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/chat/completions")
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.read())
        assert body["model"] == "vision-test"
        assert body["messages"][0]["content"][1]["image_url"]["url"] == "https://gw/ipfs/QmId"
        content = json.dumps({"fullName": "Jane Roe", "idNumber": "X1"})
        return httpx.Response(200, json={
            "choices": [{"message": {"content": content}}],
            "usage": {"total_tokens": 42}
        })

    service = VisionExtractionService(api_key="sk-test", base_url="https://vision.test/v1",
                                      model="vision-test", transport=httpx.MockTransport(handler))

    assert service.extract("https://gw/ipfs/QmId").fullName == "Jane Roe"


def test_extract_reports_quota_exhaustion():
    def handler(request):
        return httpx.Response(429, json={"error": {"code": "insufficient_quota", "message": "quota"}})

    service = VisionExtractionService(api_key="sk-test", transport=httpx.MockTransport(handler))

    with pytest.raises(ExtractionError, match="quota exceeded"):
        service.extract("https://gw/ipfs/QmId")


def test_extract_timeout_raises():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    service = VisionExtractionService(api_key="sk-test", transport=httpx.MockTransport(handler))

    with pytest.raises(ExtractionError, match="timed out"):
        service.extract("https://gw/ipfs/QmId")


def test_extract_requires_key_and_image():
    with pytest.raises(ExtractionError, match="not configured"):
        VisionExtractionService().extract("https://gw/ipfs/QmId")
    with pytest.raises(ExtractionError, match="No image"):
        VisionExtractionService(api_key="sk-test").extract("")


# ============ CAPTCHA ============

def test_captcha_passes_on_success():
    def handler(request: httpx.Request) -> httpx.Response:
        body = request.read().decode()
        assert "secret=s3cret" in body
        assert "remoteip=10.0.0.1" in body
        return httpx.Response(200, json={"success": True})

    verifier = CaptchaVerifier(secret_key="s3cret", transport=httpx.MockTransport(handler))

    assert verifier.verify("token", "10.0.0.1") is True


def test_captcha_rejected_token():
    def handler(request):
        return httpx.Response(200, json={"success": False, "error-codes": ["invalid-input-response"]})

    verifier = CaptchaVerifier(secret_key="s3cret", transport=httpx.MockTransport(handler))

    assert verifier.verify("token") is False


def test_captcha_transport_error_fails_closed():
    def handler(request):
        raise httpx.ConnectError("down", request=request)

    verifier = CaptchaVerifier(secret_key="s3cret", transport=httpx.MockTransport(handler))

    assert verifier.verify("token") is False


def test_captcha_demo_mode():
    verifier = CaptchaVerifier()

    assert verifier.verify("anything") is True
    assert verifier.verify("") is False


# ============ Wallet ============

def test_connect_wallet_checksums_address():
    address = "0x" + "ab" * 20

    assert connect_wallet(address) == Web3.to_checksum_address(address)


@pytest.mark.parametrize("address", [None, "", "0x123", "not-an-address"])
def test_connect_wallet_rejects_bad_address(address):
    with pytest.raises(NotConnected):
        connect_wallet(address)


def test_connect_wallet_verifies_signature():
    account = Account.from_key(TEST_KEY)
    message = "Sign in to RYT DID"
    signed = Account.sign_message(encode_defunct(text=message), private_key=TEST_KEY)
    signature = "0x" + bytes(signed.signature).hex()

    assert connect_wallet(account.address.lower(), signature, message) == account.address

    with pytest.raises(NotConnected, match="does not match"):
        connect_wallet("0x" + "ab" * 20, signature, message)
    with pytest.raises(NotConnected):
        connect_wallet(account.address, signature, None)


# ============ Minting ============

def transfer_receipt(token_id: int, status: int = 1):
    return {
        "status": status,
        "blockNumber": 5,
        "logs": [{
            "address": CONTRACT,
            "topics": [
                bytes(TRANSFER_TOPIC),
                bytes(32),
                bytes(12) + bytes.fromhex("ab" * 20),
                token_id.to_bytes(32, "big")
            ]
        }]
    }


def test_token_id_from_receipt():
    assert token_id_from_receipt(transfer_receipt(7), CONTRACT.lower()) == "7"
    assert token_id_from_receipt({"logs": []}, CONTRACT) is None
    assert token_id_from_receipt(transfer_receipt(7), "0x" + "00" * 20) is None


def test_mint_returns_hash_and_token_id():
    w3 = MagicMock()
    w3.eth.send_raw_transaction.return_value = bytes.fromhex("12" * 32)
    w3.eth.wait_for_transaction_receipt.return_value = transfer_receipt(9)
    service = MintingService(w3=w3, private_key=TEST_KEY, contract_address=CONTRACT)

    result = service.mint("ipfs://meta")

    service.contract.functions.mint.assert_called_once_with("ipfs://meta")
    assert result.tx_hash == "0x" + "12" * 32
    assert result.token_id == "9"
    assert result.block_number == 5


def test_mint_reverted_transaction_raises():
    w3 = MagicMock()
    w3.eth.send_raw_transaction.return_value = bytes(32)
    w3.eth.wait_for_transaction_receipt.return_value = transfer_receipt(1, status=0)
    service = MintingService(w3=w3, private_key=TEST_KEY, contract_address=CONTRACT)

    with pytest.raises(MintError, match="reverted"):
        service.mint("ipfs://meta")


def test_mint_send_failure_raises():
    w3 = MagicMock()
    w3.eth.send_raw_transaction.side_effect = ValueError("insufficient funds")
    service = MintingService(w3=w3, private_key=TEST_KEY, contract_address=CONTRACT)

    with pytest.raises(MintError, match="insufficient funds"):
        service.mint("ipfs://meta")


def test_mint_unconfigured_raises():
    service = MintingService(w3=MagicMock(), contract_address=CONTRACT)

    assert service.is_configured() is False
    with pytest.raises(MintError, match="not configured"):
        service.mint("ipfs://meta")


# ============ Encryption ============

def test_seal_and_open_record():
    service = EncryptionService("22" * 32)
    record = {"fullName": "Jane Roe", "idNumber": "X1"}

    sealed = service.seal_record(record)

    assert "Jane" not in sealed
    assert service.open_record(sealed) == record
    assert service.seal_record(record) != sealed


@pytest.mark.parametrize("key", ["abcd", "zz" * 32])
def test_encryption_rejects_bad_keys(key):
    with pytest.raises(ValueError):
        EncryptionService(key)


def test_encryption_service_absent_without_key():
    assert get_encryption_service() is None


def test_record_hash_is_key_order_independent():
    assert compute_record_hash({"a": 1, "b": 2}) == compute_record_hash({"b": 2, "a": 1})
    assert len(compute_sha256("x")) == 64
