from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from apps.api.main import app

_MAPPINGS = [
    {"key": "a", "value": "Alice"},
    {"key": "ab", "value": "Abby"},
    {"key": "b", "value": "Bob"},
]


async def _post(path: str, payload: object) -> httpx.Response:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        return await client.post(path, json=payload)


@pytest.mark.anyio
async def test_healthz_returns_ok_and_request_id() -> None:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Namekey-Request-Id"]


@pytest.mark.anyio
async def test_meta_reports_limits(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NAMEKEY_MAX_INPUT_CHARS", "not-a-number")
    monkeypatch.setenv("NAMEKEY_MAX_MAPPINGS", "12")
    monkeypatch.setenv("NAMEKEY_MAX_RULES", "0")
    monkeypatch.setenv("NAMEKEY_REQUEST_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("NAMEKEY_MAX_CONCURRENCY", "3")
    monkeypatch.setenv("NAMEKEY_QUEUE_TIMEOUT_SECONDS", "-1")

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/v1/meta")

    assert response.status_code == 200
    payload = response.json()
    assert payload["limits"] == {
        "max_input_chars": 10000,
        "max_mappings": 12,
        "max_rules": 1000,
        "timeout_seconds": 2.5,
        "max_concurrency": 3,
        "queue_timeout_seconds": 0.0,
    }
    assert payload["key_grammar"]["name_slots"] == ["<p>", "<p,>"]
    assert payload["slot_modes"] == ["all", "first"]


@pytest.mark.anyio
async def test_parse_endpoint() -> None:
    response = await _post("/v1/parse", {"key": "Hi <p,>"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["has_name_slot"] is True
    assert [segment["kind"] for segment in payload["segments"]] == ["literal", "name_slot"]


@pytest.mark.anyio
async def test_match_endpoint_expands_value() -> None:
    response = await _post(
        "/v1/match",
        {
            "key": "<p> vs <p,>",
            "input": "a vs bab",
            "name_mappings": _MAPPINGS,
            "value": "<p> played against <p>",
        },
    )

    assert response.status_code == 200
    assert response.json() == {
        "matched": True,
        "matched_names": ["Alice", "Bob", "Abby"],
        "output": "Alice played against Bob, Abby",
    }


@pytest.mark.anyio
async def test_match_endpoint_no_match() -> None:
    response = await _post(
        "/v1/match", {"key": "plain", "input": "plain", "name_mappings": _MAPPINGS}
    )

    assert response.status_code == 200
    assert response.json() == {"matched": False, "matched_names": [], "output": None}


@pytest.mark.anyio
async def test_match_endpoint_rejects_schema_violations() -> None:
    response = await _post("/v1/match", {"key": "<p>", "slot_mode": "many"})

    assert response.status_code == 400
    payload = response.json()
    assert payload["error_code"] == "INVALID_REQUEST"
    assert payload["detail"]["request_id"] == response.headers["X-Namekey-Request-Id"]


@pytest.mark.anyio
async def test_invalid_json_body_is_rejected() -> None:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.post(
            "/v1/expand", content=b"{not json", headers={"Content-Type": "application/json"}
        )

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_JSON"


@pytest.mark.anyio
async def test_input_limit_returns_413(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NAMEKEY_MAX_INPUT_CHARS", "5")

    response = await _post(
        "/v1/match", {"key": "<p>", "input": "aaaaaa", "name_mappings": _MAPPINGS}
    )

    assert response.status_code == 413
    payload = response.json()
    assert payload["error_code"] == "PAYLOAD_TOO_LARGE"
    assert payload["detail"]["field"] == "input"


@pytest.mark.anyio
async def test_mapping_limit_returns_413(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NAMEKEY_MAX_MAPPINGS", "2")

    response = await _post("/v1/match", {"key": "<p>", "input": "a", "name_mappings": _MAPPINGS})

    assert response.status_code == 413
    assert response.json()["detail"]["max_mappings"] == 2


@pytest.mark.anyio
async def test_expand_endpoint() -> None:
    response = await _post("/v1/expand", {"value": "Hi <p>!", "names": []})

    assert response.status_code == 200
    assert response.json() == {"output": "Hi !"}


@pytest.mark.anyio
async def test_resolve_endpoint_with_inline_ruleset() -> None:
    response = await _post(
        "/v1/resolve",
        {
            "inputs": ["lunch ab", "nothing"],
            "ruleset": {
                "name_mappings": _MAPPINGS,
                "rules": [{"key": "lunch <p,>", "value": "Lunch with <p>"}],
            },
        },
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["outcomes"][0]["output"] == "Lunch with Abby"
    assert payload["outcomes"][1]["matched"] is False
    assert payload["summary"]["matched_count"] == 1


@pytest.mark.anyio
async def test_resolve_endpoint_with_yaml_ruleset() -> None:
    ruleset_yaml = (
        "name_mappings:\n  a: Ann\nrules:\n  - key: '<p> ran'\n    value: '<p> went running'\n"
    )

    response = await _post("/v1/resolve", {"inputs": ["a ran"], "ruleset_yaml": ruleset_yaml})

    assert response.status_code == 200
    assert response.json()["outcomes"][0]["output"] == "Ann went running"


@pytest.mark.anyio
async def test_resolve_endpoint_uses_default_ruleset_path(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    ruleset_path = tmp_path / "rules.yaml"
    ruleset_path.write_text(
        "name_mappings:\n  b: Bob\nrules:\n  - key: 'with <p>'\n    value: 'With <p>'\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("NAMEKEY_RULESET_PATH", str(ruleset_path))

    response = await _post("/v1/resolve", {"inputs": ["with b"]})

    assert response.status_code == 200
    assert response.json()["outcomes"][0]["output"] == "With Bob"


@pytest.mark.anyio
async def test_resolve_endpoint_requires_ruleset(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("NAMEKEY_RULESET_PATH", raising=False)

    response = await _post("/v1/resolve", {"inputs": ["x"]})

    assert response.status_code == 400
    assert response.json()["message"] == "a rule set is required"


@pytest.mark.anyio
async def test_resolve_endpoint_rejects_conflicting_rulesets() -> None:
    response = await _post(
        "/v1/resolve", {"inputs": ["x"], "ruleset": {}, "ruleset_yaml": "rules: []\n"}
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_ARGUMENT_CONFLICT"


@pytest.mark.anyio
async def test_resolve_endpoint_reports_invalid_yaml() -> None:
    response = await _post("/v1/resolve", {"inputs": ["x"], "ruleset_yaml": "rules: [\n"})

    assert response.status_code == 400
    payload = response.json()
    assert payload["error_code"] == "INVALID_ARGUMENT"
    assert "Invalid YAML" in payload["detail"]["error"]


@pytest.mark.anyio
async def test_resolve_endpoint_limits_inline_rule_text(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NAMEKEY_MAX_INPUT_CHARS", "20")

    response = await _post(
        "/v1/resolve",
        {
            "inputs": ["lunch a"],
            "ruleset": {
                "name_mappings": _MAPPINGS,
                "rules": [
                    {"key": "lunch <p,>", "value": "Lunch with <p>"},
                    {"key": "x <p,>", "value": "<p>" * 10},
                ],
            },
        },
    )

    assert response.status_code == 413
    payload = response.json()
    assert payload["error_code"] == "PAYLOAD_TOO_LARGE"
    assert payload["detail"]["field"] == "rules[1].value"
    assert payload["detail"]["max_chars"] == 20


@pytest.mark.anyio
async def test_resolve_endpoint_limits_yaml_rule_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NAMEKEY_MAX_INPUT_CHARS", "20")
    long_key = "x" * 21 + " <p>"
    ruleset_yaml = f"name_mappings:\n  a: Ann\nrules:\n  - key: '{long_key}'\n    value: ok\n"

    response = await _post("/v1/resolve", {"inputs": ["a"], "ruleset_yaml": ruleset_yaml})

    assert response.status_code == 413
    assert response.json()["detail"]["field"] == "rules[0].key"


@pytest.mark.anyio
async def test_resolve_endpoint_limits_rule_count(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NAMEKEY_MAX_RULES", "2")
    rules = [{"key": f"r{index} <p>", "value": "<p>"} for index in range(3)]

    response = await _post(
        "/v1/resolve",
        {"inputs": ["r0 a"], "ruleset": {"name_mappings": _MAPPINGS, "rules": rules}},
    )

    assert response.status_code == 413
    payload = response.json()
    assert payload["detail"]["field"] == "rules"
    assert payload["detail"]["max_rules"] == 2
    assert payload["detail"]["actual"] == 3
