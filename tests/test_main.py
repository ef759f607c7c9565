"""
End-to-end tests for the CLI: real AccountSetup, real AcmeClient, filesystem
secret store, HTTP mocked with `responses`.
"""
from __future__ import annotations

import json

import pytest
import responses as resp_lib

import main

DIRECTORY_URL = "https://acme.test/directory"

FAKE_DIRECTORY = {
    "newNonce": "https://acme.test/newNonce",
    "newAccount": "https://acme.test/newAccount",
}


@pytest.fixture()
def manifest(tmp_path):
    path = tmp_path / "issuer.json"
    path.write_text(json.dumps({
        "metadata": {"name": "test-issuer", "namespace": "team-a"},
        "spec": {
            "acme": {
                "server": DIRECTORY_URL,
                "email": "Foo@Example.COM",
                "privateKey": "test-issuer-account-key",
            }
        },
    }))
    return path


def _mock_authority(new_account_status=201, new_account_json=None):
    resp_lib.add(resp_lib.GET, DIRECTORY_URL, json=FAKE_DIRECTORY)
    resp_lib.add(resp_lib.HEAD, FAKE_DIRECTORY["newNonce"], headers={"Replay-Nonce": "n1"})
    resp_lib.add(
        resp_lib.POST,
        FAKE_DIRECTORY["newAccount"],
        json=new_account_json or {"status": "valid"},
        status=new_account_status,
        headers={"Location": "https://ca.example/acct/42", "Replay-Nonce": "n2"},
    )


@resp_lib.activate
def test_run_setup_registers_fresh_issuer(manifest, tmp_path, capsys):
    _mock_authority()
    store = tmp_path / "secrets"

    exit_code = main.run_setup(str(manifest), store_path=str(store), timeout=30)

    assert exit_code == 0
    status = json.loads(capsys.readouterr().out)
    assert status["acme"]["uri"] == "https://ca.example/acct/42"
    assert status["conditions"][0]["status"] == "True"
    assert status["conditions"][0]["reason"] == "ACMEAccountRegistered"
    assert (store / "team-a" / "test-issuer-account-key.json").exists()

    posted = json.loads(resp_lib.calls[-1].request.body)
    import base64
    payload = json.loads(base64.urlsafe_b64decode(posted["payload"] + "=="))
    assert payload["contact"] == ["mailto:foo@example.com"]


@resp_lib.activate
def test_run_setup_reports_failure(manifest, tmp_path, capsys):
    _mock_authority(
        new_account_status=403,
        new_account_json={"type": "urn:ietf:params:acme:error:unauthorized", "detail": "EAB required"},
    )

    exit_code = main.run_setup(str(manifest), store_path=str(tmp_path / "secrets"))

    assert exit_code == 1
    status = json.loads(capsys.readouterr().out)
    cond = status["conditions"][0]
    assert cond["status"] == "False"
    assert cond["reason"] == "ErrRegisterACMEAccount"
    assert cond["message"].startswith("Failed to register ACME account: ")
    assert "EAB required" in cond["message"]


def test_run_setup_missing_manifest(tmp_path, capsys):
    assert main.run_setup(str(tmp_path / "absent.json")) == 2
    assert capsys.readouterr().out == ""


def test_main_requires_manifest():
    with pytest.raises(SystemExit) as exc_info:
        main.main([])
    assert exc_info.value.code == 2


@resp_lib.activate
def test_run_setup_stdout_holds_only_status_json(manifest, tmp_path, capsys):
    # A fresh issuer has no URI on record, so a verification Warning event is emitted
    _mock_authority()

    main.run_setup(str(manifest), store_path=str(tmp_path / "secrets"))

    out = capsys.readouterr().out
    assert "Failed to verify ACME account" not in out
    assert json.loads(out)["conditions"][0]["reason"] == "ACMEAccountRegistered"
