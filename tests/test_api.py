"""API tests for the wizard session endpoints, run with every collaborator in demo mode."""

from unittest.mock import patch

from web3 import Web3

from did_onboarding.config import config
from did_onboarding.errors import UploadError

WALLET = "0x" + "cd" * 20
JPEG = ("id.jpg", b"\xff\xd8\xff\xe0fake-jpeg", "image/jpeg")


def start(client) -> str:
    response = client.post("/api/sessions")
    assert response.status_code == 201
    return response.json()["session_id"]


def post(client, session_id: str, action: str, **kwargs):
    return client.post(f"/api/sessions/{session_id}/{action}", **kwargs)


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["demo_fallback"] is True


def test_list_steps(client):
    steps = client.get("/api/steps").json()

    assert len(steps) == 8
    assert steps[1]["name"] == "RECAPTCHA"


def test_new_session_initial_state(client):
    response = client.post("/api/sessions")

    body = response.json()
    assert body["current_step_name"] == "RECAPTCHA"
    assert body["verification_score"] == 10
    assert body["did_data"] == {"captchaCompleted": False}
    assert body["can_advance"] is False
    assert body["can_retreat"] is False
    assert client.get("/api/health").json()["active_sessions"] == 1


def test_full_onboarding_flow(client):
    session_id = start(client)

    body = post(client, session_id, "wallet", json={"address": WALLET}).json()
    assert body["did_data"]["walletAddress"] == Web3.to_checksum_address(WALLET)
    assert body["current_step_name"] == "RECAPTCHA"

    body = post(client, session_id, "captcha", json={"token": "widget-token"}).json()
    assert body["verification_score"] == 15
    assert body["is_step_completed"] is True

    body = post(client, session_id, "next").json()
    assert body["current_step_name"] == "IMAGE_SELECTION"
    assert body["verification_score"] == 25

    body = post(client, session_id, "image", files={"file": JPEG}).json()
    assert body["did_data"]["ipfsUrl"].endswith(config.DEMO_IMAGE_CID)
    assert body["did_data"]["fileType"] == "image/jpeg"

    body = post(client, session_id, "next").json()
    assert body["current_step_name"] == "LIVENESS_VERIFICATION"
    assert body["verification_score"] == 35

    body = post(client, session_id, "liveness", files={"file": ("selfie.jpg", b"selfie", "image/jpeg")}).json()
    assert body["did_data"]["livenessVerified"] is True

    body = post(client, session_id, "next").json()
    assert body["current_step_name"] == "EXTRACTION"
    assert body["verification_score"] == 60

    body = post(client, session_id, "extraction").json()
    assert body["did_data"]["extractedInfo"] is True
    assert body["did_data"]["extractionFallback"] is True

    body = post(client, session_id, "next").json()
    assert body["current_step_name"] == "VERIFICATION"
    assert body["verification_score"] == 75

    body = post(client, session_id, "verification").json()
    assert body["did_data"]["verifiedInfo"] is True

    body = post(client, session_id, "next").json()
    assert body["current_step_name"] == "MINTING"
    assert body["verification_score"] == 92

    body = post(client, session_id, "mint").json()
    assert body["did_data"]["mintingComplete"] is True
    assert body["did_data"]["mintingFallback"] is True

    body = post(client, session_id, "next").json()
    assert body["current_step_name"] == "COMPLETED"
    assert body["verification_score"] == 100
    assert body["progress"] == 100
    assert body["did_data"]["completionTimestamp"]

    did = client.get(f"/api/sessions/{session_id}/did").json()["did"]
    assert did == f"did:ryt:{body['did_data']['didIdentifier']}"

    profile = client.get(f"/api/profile/{did}")
    assert profile.status_code == 200
    assert profile.json()["is_demo"] is True
    assert profile.json()["verification_score"] == 92
    assert profile.json()["tx_url"].endswith(body["did_data"]["transactionHash"])

    wallet_profiles = client.get(f"/api/profiles/wallet/{WALLET}").json()
    assert [p["did"] for p in wallet_profiles] == [did]


def test_skip_path_and_back(client):
    session_id = start(client)
    post(client, session_id, "captcha", json={"token": "t"})
    post(client, session_id, "next")

    body = post(client, session_id, "skip").json()
    assert body["current_step_name"] == "LIVENESS_VERIFICATION"
    assert body["skipped_identity_verification"] is True
    assert body["did_data"]["isDemo"] is True

    body = post(client, session_id, "next").json()
    assert body["current_step_name"] == "VERIFICATION"
    assert body["verification_score"] == 40

    body = post(client, session_id, "verification").json()
    assert body["did_data"]["documentNumber"] == "DEMO-12345"

    body = post(client, session_id, "back").json()
    assert body["current_step_name"] == "IMAGE_SELECTION"

    body = post(client, session_id, "back").json()
    assert body["current_step_name"] == "RECAPTCHA"
    assert body["did_data"]["captchaCompleted"] is False
    assert body["is_step_completed"] is False


def test_next_is_ignored_until_step_completed(client):
    session_id = start(client)

    body = post(client, session_id, "next").json()

    assert body["current_step_name"] == "RECAPTCHA"
    assert body["revision"] == 0


def test_unknown_session_is_404(client):
    assert client.get("/api/sessions/missing").status_code == 404
    assert post(client, "missing", "next").status_code == 404
    assert client.delete("/api/sessions/missing").status_code == 404


def test_delete_session(client):
    session_id = start(client)

    assert client.delete(f"/api/sessions/{session_id}").status_code == 204
    assert client.get(f"/api/sessions/{session_id}").status_code == 404


def test_step_handler_on_wrong_step_is_409(client):
    session_id = start(client)

    response = post(client, session_id, "image", files={"file": JPEG})

    assert response.status_code == 409
    assert "IMAGE_SELECTION" in response.json()["detail"]


def test_invalid_wallet_is_400(client):
    session_id = start(client)

    response = post(client, session_id, "wallet", json={"address": "0x123"})

    assert response.status_code == 400


def test_empty_captcha_token_is_400(client):
    session_id = start(client)

    response = post(client, session_id, "captcha", json={"token": ""})

    assert response.status_code == 400
    assert client.get(f"/api/sessions/{session_id}").json()["is_step_completed"] is False


def test_image_validation(client):
    session_id = start(client)
    post(client, session_id, "captcha", json={"token": "t"})
    post(client, session_id, "next")

    wrong_type = post(client, session_id, "image", files={"file": ("id.gif", b"GIF89a", "image/gif")})
    empty = post(client, session_id, "image", files={"file": ("id.jpg", b"", "image/jpeg")})

    assert wrong_type.status_code == 400
    assert empty.status_code == 400


def test_upload_failure_is_502(client):
    session_id = start(client)
    post(client, session_id, "captcha", json={"token": "t"})
    post(client, session_id, "next")

    with patch("did_onboarding.wizard.ipfs_service") as ipfs:
        ipfs.upload_file.side_effect = UploadError("Pinata error: unauthorized")
        response = post(client, session_id, "image", files={"file": JPEG})

    assert response.status_code == 502


def test_change_image_and_retake_selfie(client):
    session_id = start(client)
    post(client, session_id, "captcha", json={"token": "t"})
    post(client, session_id, "next")
    post(client, session_id, "image", files={"file": JPEG})

    body = client.delete(f"/api/sessions/{session_id}/image").json()
    assert body["did_data"]["ipfsUrl"] is None
    assert body["is_step_completed"] is False

    post(client, session_id, "image", files={"file": JPEG})
    post(client, session_id, "next")
    post(client, session_id, "liveness", files={"file": JPEG})

    body = client.delete(f"/api/sessions/{session_id}/liveness").json()
    assert body["did_data"]["livenessImage"] is None
    assert body["is_step_completed"] is False


def test_extraction_without_fallback_is_502(client):
    session_id = start(client)
    post(client, session_id, "captcha", json={"token": "t"})
    for action in ("next", "image", "next", "liveness", "next"):
        kwargs = {"files": {"file": JPEG}} if action in ("image", "liveness") else {}
        post(client, session_id, action, **kwargs)

    with patch.object(config, "ALLOW_DEMO_FALLBACK", False):
        response = post(client, session_id, "extraction")

    assert response.status_code == 502
    assert "not configured" in response.json()["detail"]


def test_mint_without_wallet_is_400(client):
    session_id = start(client)
    post(client, session_id, "captcha", json={"token": "t"})
    post(client, session_id, "next")
    post(client, session_id, "skip")
    post(client, session_id, "next")
    post(client, session_id, "verification")
    post(client, session_id, "next")

    response = post(client, session_id, "mint")

    assert response.status_code == 400
    assert "wallet" in response.json()["detail"].lower()


def test_unknown_profile_is_404(client):
    assert client.get("/api/profile/did:ryt:404").status_code == 404


def test_skip_is_refused_before_captcha(client):
    session_id = start(client)

    response = post(client, session_id, "skip")

    assert response.status_code == 409
    body = client.get(f"/api/sessions/{session_id}").json()
    assert body["current_step_name"] == "RECAPTCHA"
    assert body["skipped_identity_verification"] is False
    assert body["did_data"]["captchaCompleted"] is False


def test_skip_from_liveness(client):
    session_id = start(client)
    post(client, session_id, "captcha", json={"token": "t"})
    post(client, session_id, "next")
    post(client, session_id, "image", files={"file": JPEG})
    post(client, session_id, "next")

    body = post(client, session_id, "skip").json()

    assert body["current_step_name"] == "EXTRACTION"
    assert body["verification_score"] == 40


def test_idle_session_expires(client):
    session_id = start(client)

    with patch.object(config, "SESSION_TTL", 0):
        assert client.get(f"/api/sessions/{session_id}").status_code == 404
