"""Tests for the claim validation API endpoints."""

import logging

import pytest
from httpx import AsyncClient


class TestValidateEndpoint:
    """Test POST /claims/validate."""

    @pytest.mark.asyncio
    async def test_clean_claim(self, client: AsyncClient) -> None:
        response = await client.post("/claims/validate", json={
            "procedures": [{"cpt_code": "99213", "units": 1}],
            "icd_codes": ["Z00.00"],
        })
        assert response.status_code == 200
        data = response.json()
        assert data["denial_risk_score"] == 0
        assert data["risk_level"] == "low"
        assert data["summary"]["total_issues"] == 0
        assert data["input_summary"]["payer"] == "Not specified"

    @pytest.mark.asyncio
    async def test_claim_with_issues(self, client: AsyncClient) -> None:
        response = await client.post("/claims/validate", json={
            "procedures": [
                {"cpt_code": "99214"},
                {"cpt_code": "96372", "units": 5},
                {"cpt_code": "36415"},
            ],
            "icd_codes": ["I10"],
            "payer": "Medicare",
        })
        assert response.status_code == 200
        data = response.json()
        assert data["risk_level"] == "critical"
        assert data["summary"]["critical"] == 1
        assert len(data["unit_limit_issues"]) == 1
        assert data["unit_limit_issues"][0]["details"]["billed_units"] == 5
        assert data["bundling_issues"][0]["code_pair"] == ["96372", "36415"]
        correction_types = {c["type"] for c in data["corrections"]}
        assert correction_types == {"reduce-units", "add-modifier"}
        assert data["risk_breakdown"]["payer_multiplier"] == 1.10

    @pytest.mark.asyncio
    async def test_frequency_with_patient(self, client: AsyncClient) -> None:
        response = await client.post("/claims/validate", json={
            "procedures": [{"cpt_code": "83036"}],
            "icd_codes": ["E11.9"],
            "patient_identifier": "P001",
        })
        data = response.json()
        assert [i["type"] for i in data["frequency_issues"]] == ["INTERVAL_TOO_SOON"]
        assert "frequency" in data["summary"]["checks_performed"]

    @pytest.mark.asyncio
    async def test_empty_procedures_rejected(self, client: AsyncClient) -> None:
        response = await client.post("/claims/validate", json={"procedures": [], "icd_codes": ["I10"]})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_invalid_units_rejected(self, client: AsyncClient) -> None:
        response = await client.post("/claims/validate", json={"procedures": [{"cpt_code": "96372", "units": 0}]})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_blank_cpt_rejected(self, client: AsyncClient) -> None:
        response = await client.post("/claims/validate", json={"procedures": [{"cpt_code": "   "}]})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_validation_is_audited(self, client: AsyncClient, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="audit"):
            await client.post("/claims/validate", json={
                "procedures": [{"cpt_code": "99213"}],
                "patient_identifier": "P001",
            })
        assert "AUDIT: validate claim patient=P001 success=True" in caplog.text


class TestChecksEndpoint:
    """Test GET /claims/checks."""

    @pytest.mark.asyncio
    async def test_lists_checks_and_weights(self, client: AsyncClient) -> None:
        response = await client.get("/claims/checks")
        assert response.status_code == 200
        data = response.json()
        assert data["checks"] == [
            "unit_limits", "bundling", "modifiers", "medical_necessity", "payer_rules", "frequency",
        ]
        assert data["weights"]["severity"] == 0.40
        assert data["severity_points"] == {"critical": 35, "high": 20, "medium": 8, "low": 2}
        assert data["critical_floor"] == 70
