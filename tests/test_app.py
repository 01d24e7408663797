"""Tests for app.py — error mapping, session lookup and the HTTP endpoints."""

import json
import os
import sys
import threading
import urllib.error
import urllib.request
from http.server import HTTPServer

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import app
from scriptswift.errors import (
    FetchError,
    GenerationError,
    LLMTimeoutError,
    StateError,
    SummarizationError,
    ValidationError,
)
from scriptswift.session import ConversationSession
from scriptswift.transcript import TRANSCRIPT_FILENAME
from tests.conftest import make_form


class TestErrorStatus:
    def test_validation_is_400(self):
        assert app.error_status(ValidationError("businessInfo.userName", "Your name is required.")) == 400

    def test_state_is_409(self):
        assert app.error_status(StateError("busy")) == 409

    def test_no_output_is_502(self):
        assert app.error_status(GenerationError("nothing")) == 502
        assert app.error_status(SummarizationError("nothing")) == 502

    def test_timeout_is_504(self):
        assert app.error_status(LLMTimeoutError("slow")) == 504
        assert app.error_status(FetchError("slow", retryable=True)) == 504

    def test_fetch_is_502(self):
        assert app.error_status(FetchError("bad url")) == 502

    def test_unknown_is_500(self):
        assert app.error_status(RuntimeError("boom")) == 500


class TestSessionLookup:
    def test_expired_session_removed(self):
        session = ConversationSession(session_id="expired-test")
        app._sessions[session.session_id] = session
        session.created_at = session.created_at.replace(year=2000)
        assert app._get_or_none("expired-test") is None
        assert "expired-test" not in app._sessions

    def test_live_session_returned(self):
        session = ConversationSession(session_id="live-test")
        app._sessions[session.session_id] = session
        try:
            assert app._get_or_none("live-test") is session
        finally:
            app._sessions.pop("live-test", None)

    def test_unknown_session(self):
        assert app._get_or_none("nope") is None


# ---------------------------------------------------------------------------
# Endpoints over a real HTTPServer
# ---------------------------------------------------------------------------
def _call(base, method, path, body=None):
    if body is None:
        data = None
    elif isinstance(body, bytes):
        data = body
    else:
        data = json.dumps(body).encode()
    req = urllib.request.Request(base + path, data=data, method=method,
                                 headers={"Content-Type": "application/json"})
    try:
        with urllib.request.urlopen(req, timeout=5) as res:
            return res.status, res.headers, res.read()
    except urllib.error.HTTPError as e:
        return e.code, e.headers, e.read()


def _json(result):
    status, _, raw = result
    return status, json.loads(raw)


@pytest.fixture
def server():
    httpd = HTTPServer(("127.0.0.1", 0), app.Handler)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{httpd.server_address[1]}"
    httpd.shutdown()
    httpd.server_close()


@pytest.fixture
def registered(session):
    app._sessions[session.session_id] = session
    yield session
    app._sessions.pop(session.session_id, None)


def _path(session, action):
    return f"/api/session/{session.session_id}/{action}"


class TestEndpoints:
    def test_healthz(self, server):
        status, _, raw = _call(server, "GET", "/healthz")
        assert status == 200
        assert raw == b"ok"

    def test_page_shows_errors_inside_form(self, server):
        status, _, raw = _call(server, "GET", "/")
        page = raw.decode()
        assert status == 200
        assert page.index('id="form-error"') < page.index('id="script"')

    def test_page_has_no_pending_turn_placeholder(self, server):
        _, _, raw = _call(server, "GET", "/")
        # /respond answers only once the next turn exists
        assert "turn_resolving" not in raw.decode()

    def test_head(self, server):
        status, _, _ = _call(server, "HEAD", "/")
        assert status == 200

    def test_create_session(self, server):
        status, data = _json(_call(server, "POST", "/api/session"))
        try:
            assert status == 200
            assert data["session_id"] in app._sessions
        finally:
            app._sessions.pop(data["session_id"], None)

    def test_unknown_session_is_404(self, server):
        status, data = _json(_call(server, "GET", "/api/session/missing/status"))
        assert status == 404
        assert data["error"] == "Session not found"

    def test_start_opens_first_turn(self, server, registered, form):
        status, data = _json(_call(server, "POST", _path(registered, "start"), form))
        assert status == 200
        assert data["state"] == "turn_open"
        assert data["current_turn"]["salespersonUtterance"] == "Utterance 1"
        assert data["history"] == []

    def test_start_with_missing_field_is_400(self, server, registered):
        status, data = _json(_call(server, "POST", _path(registered, "start"), make_form(user_name="")))
        assert status == 400
        assert data["field"] == "businessInfo.userName"
        assert registered.state == "awaiting_input"

    def test_start_failure_reports_error(self, server, registered, form, generator):
        generator.fail_next()
        status, data = _json(_call(server, "POST", _path(registered, "start"), form))
        assert status == 502
        assert data["type"] == "GenerationError"
        assert data["retryable"] is True

    def test_unexpected_exception_is_500_json(self, server, registered, form, generator):
        generator.fail_next(RuntimeError("client exploded"))
        status, data = _json(_call(server, "POST", _path(registered, "start"), form))
        assert status == 500
        assert data["error"] == "client exploded"

    def test_respond_by_index(self, server, registered, form, generator):
        _call(server, "POST", _path(registered, "start"), form)
        status, data = _json(_call(server, "POST", _path(registered, "respond"), {"index": 1}))
        assert status == 200
        assert data["history"][0]["chosenProspectResponse"]["responseType"] == "neutral"
        assert data["current_turn"]["salespersonUtterance"] == "Utterance 2"
        assert generator.calls[-1][3].response_text == "I'm busy right now."

    def test_respond_by_option(self, server, registered, form):
        _call(server, "POST", _path(registered, "start"), form)
        option = {"responseText": "Not interested.", "responseType": "negative_objection"}
        status, data = _json(_call(server, "POST", _path(registered, "respond"), {"option": option}))
        assert status == 200
        assert data["history"][0]["chosenProspectResponse"] == option

    @pytest.mark.parametrize("index", [7, -1, "two"])
    def test_bad_index_is_400(self, server, registered, form, index):
        _call(server, "POST", _path(registered, "start"), form)
        status, data = _json(_call(server, "POST", _path(registered, "respond"), {"index": index}))
        assert status == 400
        assert data["field"] == "index"
        assert registered.state == "turn_open"

    def test_unknown_option_is_400(self, server, registered, form):
        _call(server, "POST", _path(registered, "start"), form)
        option = {"responseText": "Tell me more", "responseType": "positive"}
        status, data = _json(_call(server, "POST", _path(registered, "respond"), {"option": option}))
        assert status == 400
        assert registered.history == ()

    @pytest.mark.parametrize("body", [b"[1]", b'"hello"', b"not json"])
    def test_non_object_body_is_400(self, server, registered, form, body):
        _call(server, "POST", _path(registered, "start"), form)
        status, data = _json(_call(server, "POST", _path(registered, "respond"), body))
        assert status == 400
        assert data["field"] == "option"

    def test_non_object_start_body_is_400(self, server, registered):
        status, data = _json(_call(server, "POST", _path(registered, "start"), b"[1]"))
        assert status == 400
        assert registered.state == "awaiting_input"

    def test_respond_before_start_is_409(self, server, registered):
        option = {"responseText": "Okay, what is it?", "responseType": "positive"}
        status, data = _json(_call(server, "POST", _path(registered, "respond"), {"option": option}))
        assert status == 409
        assert data["type"] == "StateError"

    def test_retry_after_failed_turn(self, server, registered, form, generator):
        _call(server, "POST", _path(registered, "start"), form)
        generator.fail_next()
        status, data = _json(_call(server, "POST", _path(registered, "respond"), {"index": 0}))
        assert status == 502
        _, state = _json(_call(server, "GET", _path(registered, "status")))
        assert state["state"] == "turn_resolving"
        assert state["stalled"] is True
        assert state["last_error"]["type"] == "GenerationError"

        status, data = _json(_call(server, "POST", _path(registered, "retry")))
        assert status == 200
        assert data["state"] == "turn_open"
        assert data["stalled"] is False
        assert len(data["history"]) == 1

    def test_retry_without_failure_is_409(self, server, registered, form):
        _call(server, "POST", _path(registered, "start"), form)
        status, _ = _json(_call(server, "POST", _path(registered, "retry")))
        assert status == 409

    def test_clear(self, server, registered, form):
        _call(server, "POST", _path(registered, "start"), form)
        _call(server, "POST", _path(registered, "respond"), {"index": 0})
        status, data = _json(_call(server, "POST", _path(registered, "clear")))
        assert status == 200
        assert data["state"] == "awaiting_input"
        assert data["history"] == []
        assert data["current_turn"] is None

    def test_events_since(self, server, registered, form):
        _call(server, "POST", _path(registered, "start"), form)
        _, everything = _json(_call(server, "GET", _path(registered, "events")))
        total = everything["total"]
        assert total == len(everything["events"]) > 0

        _call(server, "POST", _path(registered, "respond"), {"index": 0})
        _, newer = _json(_call(server, "GET", _path(registered, "events") + f"?since={total}"))
        assert newer["total"] > total
        assert [e["idx"] for e in newer["events"]] == list(range(total, newer["total"]))

    def test_events_bad_since_is_400(self, server, registered):
        status, data = _json(_call(server, "GET", _path(registered, "events") + "?since=abc"))
        assert status == 400
        assert data["field"] == "since"

    def test_transcript_download(self, server, registered, form):
        _call(server, "POST", _path(registered, "start"), form)
        status, headers, raw = _call(server, "GET", _path(registered, "transcript") + "?download=1")
        assert status == 200
        assert headers["Content-Disposition"] == f'attachment; filename="{TRANSCRIPT_FILENAME}"'
        assert "Utterance 1" in raw.decode("utf-8")

    def test_transcript_inline(self, server, registered, form):
        _call(server, "POST", _path(registered, "start"), form)
        status, headers, raw = _call(server, "GET", _path(registered, "transcript"))
        assert status == 200
        assert headers.get("Content-Disposition") is None
        assert headers["Content-Type"].startswith("text/plain")
