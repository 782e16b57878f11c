import json

from climb.core.config import settings
from climb.features.usage.service import QuotaTier
from climb.tests.mocks import UnconfiguredCompletionClient

USER = {"X-User-Id": "user-1"}
JOB_TEXT = "Senior Backend Engineer at Acme. Must have Python and PostgreSQL."
ROLE_JSON = json.dumps({"title": "Senior Backend Engineer", "company": "Acme", "keywords": ["python"]})


def test_parse_role_returns_parse_and_quota_headers(make_client):
    client, _, llm = make_client([f"```json\n{ROLE_JSON}\n```"])

    resp = client.post("/api/agent/parse-role", json={"jobText": JOB_TEXT}, headers=USER)

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["parsed"]["title"] == "Senior Backend Engineer"
    assert body["parsed"]["mustHaves"] == []
    assert resp.headers["X-RateLimit-Limit"] == "40"
    assert resp.headers["X-RateLimit-Remaining"] == "39"
    assert "x-request-id" in resp.headers
    assert len(llm.calls) == 1


def test_parse_role_uses_pro_limit(make_client, plan_store):
    plan_store.set_plan("user-1", "pro")
    client, _, _ = make_client([ROLE_JSON])

    resp = client.post("/api/agent/parse-role", json={"jobText": JOB_TEXT}, headers=USER)

    assert resp.headers["X-RateLimit-Limit"] == "300"


def test_parse_role_falls_back_to_empty_parse(make_client):
    client, _, _ = make_client(["not json"] * 3)

    resp = client.post("/api/agent/parse-role", json={"jobText": JOB_TEXT}, headers=USER)

    assert resp.status_code == 200
    parsed = resp.json()["parsed"]
    assert parsed["title"] == ""
    assert parsed["keywords"] == []
    assert parsed["niceToHaves"] == []


def test_missing_user_header_is_401(make_client):
    client, _, llm = make_client()

    resp = client.post("/api/agent/parse-role", json={"jobText": JOB_TEXT})

    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"
    assert llm.calls == []


def test_quota_exhaustion_is_429_with_retry_after(make_client, fake_clock):
    client, app, llm = make_client([ROLE_JSON])
    app.state.usage_meter.quotas = {"parse-role": QuotaTier(free=1, pro=2, window_ms=30_000)}

    ok = client.post("/api/agent/parse-role", json={"jobText": JOB_TEXT}, headers=USER)
    assert ok.status_code == 200

    fake_clock.advance(10_000)
    denied = client.post("/api/agent/parse-role", json={"jobText": JOB_TEXT}, headers=USER)

    assert denied.status_code == 429
    body = denied.json()
    assert body["error"]["code"] == "ai_rate_limited"
    assert body["plan"] == "free"
    assert body["retryAfterSec"] == 20
    assert "Upgrade to Pro" in body["suggestion"]
    assert denied.headers["Retry-After"] == "20"
    assert denied.headers["X-RateLimit-Remaining"] == "0"
    assert denied.headers["x-request-id"] == body["error"]["request_id"]
    # the provider is never called for a denied request
    assert len(llm.calls) == 1


def test_invalid_body_is_400(make_client):
    client, _, _ = make_client()

    resp = client.post("/api/agent/parse-role", json={"jobText": "short"}, headers=USER)

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"


def test_request_id_is_echoed_in_errors(make_client):
    client, _, _ = make_client()

    resp = client.post("/api/agent/parse-role", json={"jobText": JOB_TEXT}, headers={"x-request-id": "req-123"})

    assert resp.headers["x-request-id"] == "req-123"
    assert resp.json()["error"]["request_id"] == "req-123"


def test_match_gap_requires_role_or_text(make_client):
    client, _, _ = make_client()

    resp = client.post("/api/agent/match-gap", json={"profile": {"skills": ["python"]}}, headers=USER)

    assert resp.status_code == 400


def test_match_gap_returns_analysis(make_client):
    analysis = {"matchScore": 64, "missingKeywords": ["go"], "suggestedEdits": [], "suggestedBullets": []}
    client, _, _ = make_client([json.dumps(analysis)])

    resp = client.post(
        "/api/agent/match-gap",
        json={"role": {"title": "Engineer", "keywords": ["go"]}, "profile": {"skills": ["python"]}},
        headers=USER,
    )

    assert resp.status_code == 200
    assert resp.json()["analysis"]["matchScore"] == 64
    assert resp.headers["X-RateLimit-Limit"] == "25"


def test_improve_bullet(make_client):
    client, _, llm = make_client(['"Shipped a billing service handling 2M requests/day"'])

    resp = client.post(
        "/api/agent/improve-bullet",
        json={
            "bullet": "Worked on billing service",
            "instruction": "quantify impact",
            "context": {"roleTitle": "Backend Engineer", "company": "Acme"},
        },
        headers=USER,
    )

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "improvedBullet": "Shipped a billing service handling 2M requests/day"}
    assert "Company: Acme" in llm.calls[0]["messages"][1].content


def test_cover_letter_without_credentials_is_503(make_client):
    client, app, _ = make_client(completion_client=UnconfiguredCompletionClient())

    resp = client.post(
        "/api/agent/cover-letter-from-posting",
        json={"jobText": "A long enough job posting for a backend role."},
        headers=USER,
    )

    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "not_configured"
    # no quota is spent on an unconfigured provider
    assert len(app.state.usage_meter.store) == 0


def test_cover_letter_from_parsed_role(make_client):
    client, _, llm = make_client(['{"subject": "Backend Engineer application", "body": "Dear Acme team"}'])

    resp = client.post(
        "/api/agent/cover-letter-from-posting",
        json={"parsed": {"title": "Backend Engineer", "company": "Acme"}, "resumeSummary": "6 years of Python"},
        headers=USER,
    )

    assert resp.status_code == 200
    assert resp.json() == {
        "company": "Acme",
        "title": "Backend Engineer",
        "body": "Dear Acme team",
        "subject": "Backend Engineer application",
    }
    assert resp.headers["X-RateLimit-Limit"] == "8"
    assert len(llm.calls) == 1


def test_cover_letter_from_job_text_spends_only_the_pack_quota(make_client):
    client, app, llm = make_client([ROLE_JSON, '{"body": "Dear Acme team"}'])

    resp = client.post(
        "/api/agent/cover-letter-from-posting",
        json={"jobText": "A long enough job posting for a backend role at Acme."},
        headers=USER,
    )

    assert resp.status_code == 200
    assert resp.json()["company"] == "Acme"
    assert resp.json()["title"] == "Senior Backend Engineer"
    assert resp.json()["subject"] is None
    assert resp.headers["X-RateLimit-Limit"] == "8"
    assert resp.headers["X-RateLimit-Remaining"] == "7"
    assert [key for key, _ in app.state.usage_meter.store.items()] == ["generate-pack:free:user-1"]
    assert len(llm.calls) == 2


def test_cover_letter_when_inner_role_parse_falls_back(make_client):
    client, app, llm = make_client(["not json"] * 3 + ['{"body": "Dear hiring team"}'])

    resp = client.post(
        "/api/agent/cover-letter-from-posting",
        json={"jobText": "A long enough job posting for a backend role at Acme."},
        headers=USER,
    )

    assert resp.status_code == 200
    assert resp.json() == {"company": "", "title": "", "body": "Dear hiring team", "subject": None}
    assert [key for key, _ in app.state.usage_meter.store.items()] == ["generate-pack:free:user-1"]
    assert len(llm.calls) == 4


def test_cover_letter_needs_job_text_or_parsed(make_client):
    client, _, _ = make_client()

    resp = client.post("/api/agent/cover-letter-from-posting", json={}, headers=USER)

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"


def test_telemetry_is_limited_per_ip(make_client, monkeypatch):
    monkeypatch.setattr(settings, "TELEMETRY_RATE_LIMIT", 2)
    client, _, _ = make_client()
    event = {"event": "page_view", "category": "navigation", "path": "/jobs"}
    first_ip = {"X-Forwarded-For": "10.0.0.1, 172.16.0.1"}

    assert client.post("/api/telemetry/event", json=event, headers=first_ip).json() == {"success": True, "remaining": 1}
    assert client.post("/api/telemetry/event", json=event, headers=first_ip).status_code == 200

    denied = client.post("/api/telemetry/event", json=event, headers=first_ip)
    assert denied.status_code == 429
    assert denied.json()["error"]["code"] == "rate_limited"
    assert "resetAt" in denied.json()

    other = client.post("/api/telemetry/event", json=event, headers={"X-Forwarded-For": "10.0.0.2"})
    assert other.status_code == 200


def test_invalid_telemetry_bodies_count_toward_the_ip_limit(make_client, monkeypatch):
    monkeypatch.setattr(settings, "TELEMETRY_RATE_LIMIT", 2)
    client, app, _ = make_client()
    ip = {"X-Forwarded-For": "10.0.0.9"}

    first = client.post("/api/telemetry/event", json={"event": "x"}, headers=ip)
    assert first.status_code == 400
    assert first.json()["error"]["code"] == "validation_error"

    malformed = client.post(
        "/api/telemetry/event", content=b"{not json", headers={**ip, "Content-Type": "application/json"}
    )
    assert malformed.status_code == 400
    assert malformed.json()["detail"] == "Invalid JSON body"

    denied = client.post("/api/telemetry/event", json={"event": "page_view"}, headers=ip)
    assert denied.status_code == 429
    assert len(app.state.request_guard.store) == 1
    assert "telemetry:10.0.0.9" in app.state.request_guard.store


def test_health_endpoints(make_client):
    client, _, _ = make_client()

    assert client.get("/healthz").json() == {"status": "ok"}
    ready = client.get("/readyz").json()
    assert ready["llm_configured"] is True
    assert ready["tracked_quota_keys"] == 0


def test_resume_summary_route(make_client):
    summary = {
        "summary": "Backend engineer with six years building Python APIs.",
        "focusAreas": ["Lead with API scale", "Name the stack", "Quantify uptime"],
        "confidence": 0.82,
    }
    client, app, llm = make_client([json.dumps(summary)])

    resp = client.post(
        "/api/agent/resume-summary",
        json={"targetRole": "Backend Engineer", "skills": ["Python"], "experiences": [{"title": "Engineer"}]},
        headers=USER,
    )

    assert resp.status_code == 200
    assert resp.json() == {"success": True, **summary}
    assert resp.headers["X-RateLimit-Limit"] == "40"
    assert "resume-summary:free:user-1" in app.state.usage_meter.store
    assert '"target_role": "Backend Engineer"' in llm.calls[0]["messages"][1].content


def test_resume_summary_route_falls_back(make_client):
    client, _, llm = make_client(["no summary today"])

    resp = client.post("/api/agent/resume-summary", json={"skills": ["SQL"]}, headers=USER)

    assert resp.status_code == 200
    body = resp.json()
    assert body["summary"].startswith("Results-oriented professional role")
    assert body["focusAreas"][-1] == "Prioritize evidence-backed use of SQL"
    assert body["confidence"] == 0.57
    assert len(llm.calls) == 1


def test_resume_summary_rejects_oversized_skill_lists(make_client):
    client, _, llm = make_client()

    resp = client.post("/api/agent/resume-summary", json={"skills": ["Python"] * 81}, headers=USER)

    assert resp.status_code == 400
    assert llm.calls == []


def test_interview_feedback_route(make_client):
    client, app, _ = make_client(["not json"])

    resp = client.post(
        "/api/agent/interview-feedback",
        json={
            "category": "behavioral",
            "question": "Tell me about a migration you led.",
            "answer": "I led the migration. First we mapped the task, then I built the path. Errors reduced by 30%.",
        },
        headers=USER,
    )

    assert resp.status_code == 200
    feedback = resp.json()["feedback"]
    assert feedback["overallRating"] in ("strong", "good", "needs_work")
    assert feedback["rewriteTip"].startswith("Tighten to 4-6 sentences")
    assert len(feedback["strengths"]) >= 2
    assert resp.headers["X-RateLimit-Limit"] == "50"
    assert "interview-feedback:free:user-1" in app.state.usage_meter.store


def test_interview_feedback_requires_a_real_answer(make_client):
    client, app, _ = make_client()

    resp = client.post(
        "/api/agent/interview-feedback",
        json={"category": "behavioral", "question": "Tell me about a migration.", "answer": "Too short"},
        headers=USER,
    )

    assert resp.status_code == 400
    assert len(app.state.usage_meter.store) == 0
