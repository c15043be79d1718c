from patient_ledger.core.settings import settings


def _pay(api_client, auth_headers, patient_id, amount, **extra):
    payload = {
        "patient_id": patient_id,
        "amount": amount,
        "payment_method": "cash",
        "payment_date": "2024-03-10",
    }
    payload.update(extra)
    return api_client.post("/patient-payments/record-payment", json=payload, headers=auth_headers)


def test_health(api_client):
    assert api_client.get("/health").json() == {"status": "ok"}


def test_requires_bearer_token(api_client):
    res = api_client.get("/patient-payments/all", params={"month": 3, "year": 2024})
    assert res.status_code == 401
    res = api_client.get(
        "/patient-payments/all",
        params={"month": 3, "year": 2024},
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert res.status_code == 401


def test_record_payment_applies_and_reports_balance(api_client, auth_headers, make_patient):
    patient = make_patient(monthly_fees="2000")

    res = _pay(api_client, auth_headers, patient.id, "1200")

    assert res.status_code == 200, res.text
    body = res.json()
    assert body["status"] == "applied"
    assert body["payment"]["amount"] == 1200
    assert body["payment"]["entry_type"] == "payment"
    assert body["record"]["payment_status"] == "partial"
    assert body["record"]["amount_pending"] == 800
    assert body["queue_position"] is None


def test_record_payment_validation_errors(api_client, auth_headers, make_patient):
    patient = make_patient()

    res = _pay(api_client, auth_headers, patient.id, 0)
    assert res.status_code == 400
    assert res.json()["code"] == "invalid_amount"

    res = _pay(api_client, auth_headers, patient.id, "abc")
    assert res.status_code == 400

    res = _pay(api_client, auth_headers, patient.id, "1e12")
    assert res.status_code == 400
    assert res.json()["code"] == "invalid_amount"

    res = _pay(api_client, auth_headers, patient.id, "100", payment_date="31/02/2024")
    assert res.status_code == 400
    assert res.json()["code"] == "invalid_date"

    res = _pay(api_client, auth_headers, patient.id, "100", payment_method="barter")
    assert res.status_code == 400

    res = _pay(api_client, auth_headers, 9999, "100")
    assert res.status_code == 404
    assert res.json() == {"detail": "Patient 9999 not found", "code": "patient_not_found"}

    history = api_client.get(f"/patient-payments/history/{patient.id}", headers=auth_headers)
    assert history.json()["items"] == []


def test_record_payment_queues_when_offline(api_client, auth_headers, make_patient, monkeypatch, tmp_path):
    patient = make_patient()
    monkeypatch.setattr(settings, "ledger_backend", "offline_queue")
    monkeypatch.setattr(settings, "offline_queue_path", str(tmp_path / "offline.jsonl"))

    res = _pay(api_client, auth_headers, patient.id, "500")

    assert res.status_code == 202, res.text
    body = res.json()
    assert body["status"] == "queued"
    assert body["queue_position"] == 1
    assert body["payment"] is None
    assert (tmp_path / "offline.jsonl").exists()


def test_listing_for_month(api_client, auth_headers, make_patient):
    asha = make_patient("Asha", monthly_fees="2000")
    make_patient("Bala", monthly_fees="1000")
    _pay(api_client, auth_headers, asha.id, "500")

    res = api_client.get(
        "/patient-payments/all",
        params={"month": 3, "year": 2024, "limit": 1},
        headers=auth_headers,
    )

    assert res.status_code == 200, res.text
    body = res.json()
    assert (body["month"], body["year"], body["limit"], body["total_pages"]) == (3, 2024, 1, 2)
    assert body["stats"]["total_patients"] == 2
    assert body["items"][0]["name"] == "Asha"
    assert body["items"][0]["record"]["amount_paid"] == 500

    res = api_client.get(
        "/patient-payments/all", params={"month": 13, "year": 2024}, headers=auth_headers
    )
    assert res.status_code == 400
    assert res.json()["code"] == "invalid_input"


def test_correction_history_and_receipt(api_client, auth_headers, make_patient):
    patient = make_patient(monthly_fees="2000")
    payment_id = _pay(api_client, auth_headers, patient.id, "2000").json()["payment"]["id"]

    res = api_client.post(
        "/patient-payments/corrections",
        json={"payment_id": payment_id, "amount": "300", "notes": "Double entry"},
        headers=auth_headers,
    )
    assert res.status_code == 200, res.text
    assert res.json()["payment"]["reference"] == f"CORR:{payment_id}"
    assert res.json()["record"]["amount_paid"] == 1700

    res = api_client.post(
        "/patient-payments/corrections",
        json={"payment_id": payment_id, "amount": "5000"},
        headers=auth_headers,
    )
    assert res.status_code == 400

    history = api_client.get(
        f"/patient-payments/history/{patient.id}",
        params={"month": 3, "year": 2024},
        headers=auth_headers,
    ).json()
    assert [item["entry_type"] for item in history["items"]] == ["correction", "payment"]

    receipt = api_client.get(f"/patient-payments/{payment_id}/receipt.pdf", headers=auth_headers)
    assert receipt.status_code == 200
    assert receipt.headers["content-type"] == "application/pdf"
    assert receipt.content.startswith(b"%PDF")

    missing = api_client.get("/patient-payments/424242/receipt.pdf", headers=auth_headers)
    assert missing.status_code == 404


def test_month_end_endpoints(api_client, auth_headers, make_patient):
    asha = make_patient("Asha", monthly_fees="2000")
    bala = make_patient("Bala", monthly_fees="1000")
    _pay(api_client, auth_headers, asha.id, "1200")
    _pay(api_client, auth_headers, bala.id, "1500")

    summary = api_client.get("/patient-payments/carry-forward/3/2024", headers=auth_headers)
    assert summary.status_code == 200
    body = summary.json()
    assert [item["patient_id"] for item in body["items"]] == [asha.id, bala.id]
    assert body["total_carry_forward"] == 300

    saved = api_client.post(
        "/patient-payments/save-monthly-records",
        json={"month": 4, "year": 2024},
        headers=auth_headers,
    )
    assert saved.status_code == 200
    assert saved.json()["records_processed"] == 2
    assert saved.json()["records_created"] == 0

    run = api_client.post("/check-carry-forward", json={"month": 4, "year": 2024}, headers=auth_headers)
    assert run.status_code == 200
    assert run.json() == {
        "month": 4,
        "year": 2024,
        "source_month": 3,
        "source_year": 2024,
        "updated_records": 2,
        "failed": [],
    }
