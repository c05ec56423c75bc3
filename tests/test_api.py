from datetime import datetime, timedelta, timezone

from jose import jwt

from conftest import FakeProvider

from brainkey.lesson_provider import get_lesson_provider
from brainkey.main import app
from brainkey.routers import auth
from brainkey.scheduler import advance_scheduler


def test_info_and_subjects(client):
	assert client.get("/info").json()["status"] == "ok"
	subjects = client.get("/subjects").json()["subjects"]
	assert subjects == ["Math", "English Grammar", "AI & Technology", "Computer Science"]


def test_login_me_logout(client, auth_headers):
	me = client.get("/auth/me", headers=auth_headers)
	assert me.status_code == 200
	assert me.json() == {"username": "Alex", "grade_level": 3, "stars": 0}

	assert client.post("/auth/logout", headers=auth_headers).json() == {"ok": True}
	assert client.get("/auth/me", headers=auth_headers).status_code == 401
	assert client.post("/auth/logout", headers=auth_headers).status_code == 401


def test_login_validation(client):
	assert client.post("/auth/login", json={"username": "Alex", "grade": 12}).status_code == 422
	assert client.post("/auth/login", json={"username": "   ", "grade": 2}).status_code == 400


def test_requests_without_valid_token_are_rejected(client):
	assert client.get("/dashboard").status_code == 401
	bad = {"Authorization": "Bearer not-a-token"}
	assert client.get("/dashboard", headers=bad).status_code == 401


def test_dashboard_and_level(client, auth_headers):
	snap = client.get("/dashboard", headers=auth_headers).json()
	assert snap["view"] == "DASHBOARD"
	assert snap["selected_level"] == 3
	resp = client.post("/dashboard/level", json={"level": 8}, headers=auth_headers)
	assert resp.json()["selected_level"] == 8
	assert client.post("/dashboard/level", json={"level": 0}, headers=auth_headers).status_code == 422


def test_full_lesson_over_http(client, auth_headers, provider):
	client.post("/dashboard/level", json={"level": 5}, headers=auth_headers)
	started = client.post("/activity/start", json={"subject": "Math"}, headers=auth_headers)
	assert started.status_code == 200
	assert provider.calls[-1][0] == 5
	session = started.json()["session"]
	assert session["progress_total"] == 3
	assert "correct_answer" not in session["question"]

	client.post("/activity/select", json={"option": "3"}, headers=auth_headers)
	wrong = client.post("/activity/submit", json={}, headers=auth_headers).json()
	assert wrong["feedback"]["kind"] == "error"
	assert wrong["state"]["session"]["score"] == 0

	client.post("/activity/select", json={"option": "4"}, headers=auth_headers)
	right = client.post("/activity/submit", json={}, headers=auth_headers).json()
	assert right["feedback"]["kind"] == "success"
	assert right["advance_after_ms"] == 1500

	step = client.post("/activity/advance", headers=auth_headers).json()
	assert step["complete"] is False
	assert step["state"]["session"]["question"]["type"] == "typing"

	typed = client.post("/activity/keystroke", json={"text": "cat"}, headers=auth_headers).json()
	assert typed["state"]["session"]["input"] == "cat"
	pending = client.post("/activity/submit", json={}, headers=auth_headers).json()
	assert pending["feedback"]["kind"] == "neutral"
	done = client.post("/activity/submit", json={"text": "cat sat"}, headers=auth_headers).json()
	assert done["feedback"]["kind"] == "success"
	client.post("/activity/advance", headers=auth_headers)

	client.post("/activity/submit", json={"text": "2"}, headers=auth_headers)
	final = client.post("/activity/advance", headers=auth_headers).json()
	assert final["complete"] is True
	assert final["state"]["view"] == "DASHBOARD"
	assert final["state"]["last_score"] == 40
	assert final["state"]["profile"]["stars"] == 40


def test_activity_conflicts(client, auth_headers):
	assert client.post("/activity/submit", json={"text": "4"}, headers=auth_headers).status_code == 409
	client.post("/activity/start", json={"subject": "Math"}, headers=auth_headers)
	assert client.post("/activity/advance", headers=auth_headers).status_code == 409
	assert client.post("/activity/keystroke", json={"text": "x"}, headers=auth_headers).status_code == 409
	assert client.post("/activity/start", json={"subject": "Art"}, headers=auth_headers).status_code == 422


def test_exit_discards_session(client, auth_headers):
	client.post("/activity/start", json={"subject": "Computer Science"}, headers=auth_headers)
	client.post("/activity/submit", json={"text": "4"}, headers=auth_headers)
	snap = client.post("/activity/exit", headers=auth_headers).json()
	assert snap["view"] == "DASHBOARD"
	assert snap["session"] is None
	assert snap["profile"]["stars"] == 0
	assert client.post("/activity/exit", headers=auth_headers).status_code == 409


def test_provider_failure_maps_to_502(client, quiz_lesson):
	app.dependency_overrides[get_lesson_provider] = lambda: FakeProvider(quiz_lesson, error=RuntimeError("x"))
	token = client.post("/auth/login", json={"username": "Kim", "grade": 1}).json()["access_token"]
	headers = {"Authorization": f"Bearer {token}"}
	resp = client.post("/activity/start", json={"subject": "Math"}, headers=headers)
	assert resp.status_code == 502
	assert resp.json()["detail"] == "Failed to load lesson. Please try again."
	assert client.get("/activity", headers=headers).json()["view"] == "DASHBOARD"


def test_separate_logins_have_separate_shells(client):
	a = client.post("/auth/login", json={"username": "A", "grade": 2}).json()["access_token"]
	b = client.post("/auth/login", json={"username": "B", "grade": 6}).json()["access_token"]
	client.post("/activity/start", json={"subject": "Math"}, headers={"Authorization": f"Bearer {a}"})
	snap_b = client.get("/activity", headers={"Authorization": f"Bearer {b}"}).json()
	assert snap_b["view"] == "DASHBOARD"
	assert snap_b["profile"]["username"] == "B"


def _expire(token):
	jti = jwt.get_unverified_claims(token)["jti"]
	shell, _ = auth._shells[jti]
	auth._shells[jti] = (shell, datetime.now(timezone.utc) - timedelta(seconds=1))
	return jti, shell


def test_expired_shell_is_dropped_on_lookup(client):
	token = client.post("/auth/login", json={"username": "Lee", "grade": 4}).json()["access_token"]
	headers = {"Authorization": f"Bearer {token}"}
	started = client.post("/activity/start", json={"subject": "Math"}, headers=headers).json()
	session_id = started["session"]["session_id"]
	client.post("/activity/submit", json={"text": "4"}, headers=headers)
	assert advance_scheduler.pending(session_id)

	jti, shell = _expire(token)
	assert client.get("/auth/me", headers=headers).status_code == 401
	assert jti not in auth._shells
	assert shell.profile is None
	assert not advance_scheduler.pending(session_id)


def test_login_prunes_expired_shells(client):
	tokens = [client.post("/auth/login", json={"username": f"S{n}", "grade": 2}).json()["access_token"] for n in range(5)]
	expired = [_expire(t)[0] for t in tokens[:4]]
	client.post("/auth/login", json={"username": "Fresh", "grade": 2})
	assert not any(jti in auth._shells for jti in expired)
	assert len(auth._shells) == 2
