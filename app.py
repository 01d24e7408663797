"""
app.py — ScriptSwift HTTP Server
================================
Single-page UI + JSON API for building a cold-call script turn by turn.
All conversation state lives in ConversationSession; the page only renders
what /status returns and posts the user's actions.

Usage:
  python app.py              # Start on port 8080
  python app.py --port 9000  # Custom port

Endpoints:
  GET  /                                → Script builder UI
  POST /api/session                     → Create new session
  POST /api/session/{id}/start          → Validate form, generate opening turn
  POST /api/session/{id}/respond        → Pick a prospect response ({index} or {option})
  POST /api/session/{id}/retry          → Retry a failed next-turn request
  POST /api/session/{id}/clear          → Discard the conversation
  GET  /api/session/{id}/status         → Conversation state
  GET  /api/session/{id}/events         → Session event log (?since=n)
  GET  /api/session/{id}/transcript     → Script as sales_script.txt
"""

import asyncio
import json
import logging
import os
import sys
from http.server import HTTPServer, BaseHTTPRequestHandler
from urllib.parse import urlparse, parse_qs

from dotenv import load_dotenv

load_dotenv(".env.local")

from scriptswift.config import ScriptConfig
from scriptswift.errors import (
    FetchError,
    LLMTimeoutError,
    NoOutputError,
    ScriptSwiftError,
    StateError,
    ValidationError,
)
from scriptswift.session import ConversationSession
from scriptswift.transcript import TRANSCRIPT_FILENAME, session_transcript

_logger = logging.getLogger("scriptswift.app")

PORT = ScriptConfig.PORT

# In-memory session storage
_sessions: dict = {}  # session_id → ConversationSession


def _get_or_none(session_id: str):
    """Get session, cleaning up expired ones."""
    session = _sessions.get(session_id)
    if session and session.is_expired():
        del _sessions[session_id]
        return None
    return session


def error_status(error: Exception) -> int:
    """HTTP status for an error raised by a session operation."""
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, StateError):
        return 409
    if isinstance(error, LLMTimeoutError):
        return 504
    if isinstance(error, FetchError):
        return 504 if error.retryable else 502
    if isinstance(error, NoOutputError):
        return 502
    return 500


# ---------------------------------------------------------------------------
# HTML page — form + turn-by-turn script
# ---------------------------------------------------------------------------
HTML_PAGE = r"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1.0" />
  <title>ScriptSwift — Cold Call Script Builder</title>
  <style>
    :root {
      --bg: #fdfcfb; --text: #2c2c2c; --text-light: #666;
      --accent: #b85a3b; --accent-hover: #9a4830;
      --border: #e8e6e3; --surface: #f5f3f0;
      --green: #4a9; --red: #c0392b; --yellow: #b8860b;
    }
    * { box-sizing: border-box; margin: 0; padding: 0; }
    body {
      font-family: Georgia, serif; background: var(--bg); color: var(--text);
      font-size: 17px; line-height: 1.6; min-height: 100vh;
    }
    .wrap { max-width: 720px; margin: 0 auto; padding: 2rem 2rem 6rem; }
    h1 { font-size: 1.5rem; font-weight: 500; margin-bottom: .25rem; }
    .subtitle { color: var(--text-light); margin-bottom: 1.5rem; }
    .card {
      border: 1px solid var(--border); border-radius: 6px;
      padding: 1.25rem; margin-bottom: 1rem;
    }
    .card h3 { font-size: 1rem; font-weight: 500; margin-bottom: .75rem; }
    label { display: block; font-size: .85rem; color: var(--text-light); margin: .5rem 0 .2rem; }
    input[type=text], textarea {
      width: 100%; padding: .5rem; border: 1px solid var(--border);
      border-radius: 4px; font: inherit; font-size: .95rem;
    }
    textarea { min-height: 6rem; }
    .field-error { color: var(--red); font-size: .8rem; min-height: 1rem; }
    .radio-row { display: flex; gap: 1.5rem; margin: .5rem 0; font-size: .9rem; }
    button {
      padding: .5rem 1rem; border: 1px solid var(--accent); border-radius: 4px;
      background: var(--accent); color: #fff; font: inherit; font-size: .9rem; cursor: pointer;
    }
    button:hover { background: var(--accent-hover); }
    button.secondary { background: none; color: var(--accent); }
    button:disabled { opacity: .5; cursor: default; }
    .turn { border-left: 3px solid var(--border); padding: .25rem 0 .25rem 1rem; margin-bottom: 1rem; }
    .turn.open { border-left-color: var(--accent); }
    .speaker { font-size: .8rem; text-transform: uppercase; letter-spacing: .05em; color: var(--text-light); }
    .chosen { margin-top: .25rem; font-style: italic; }
    .options { display: flex; flex-wrap: wrap; gap: .5rem; margin-top: .75rem; }
    .opt-positive { border-color: var(--green); background: var(--green); }
    .opt-neutral { border-color: var(--yellow); background: var(--yellow); }
    .opt-negative_objection { border-color: var(--red); background: var(--red); }
    .error { color: var(--red); margin: .5rem 0; }
    .actions { display: flex; gap: .5rem; justify-content: flex-end; margin-top: 1rem; }
    .hidden { display: none; }
  </style>
</head>
<body>
<div class="wrap">
  <h1>ScriptSwift</h1>
  <p class="subtitle">Build a cold call script one turn at a time.</p>

  <form id="form" class="card">
    <h3>Your business</h3>
    <label>Your name</label><input type="text" name="userName" />
    <div class="field-error" data-field="businessInfo.userName"></div>
    <label>Business name</label><input type="text" name="businessName" />
    <div class="field-error" data-field="businessInfo.businessName"></div>
    <label>Product / service</label><textarea name="productService"></textarea>
    <div class="field-error" data-field="businessInfo.productService"></div>
    <label>Sales goal for this call</label><input type="text" name="salesGoals" />
    <div class="field-error" data-field="businessInfo.salesGoals"></div>

    <h3 style="margin-top:1rem">Your customer</h3>
    <div class="radio-row">
      <label><input type="radio" name="type" value="url" checked /> Website URL</label>
      <label><input type="radio" name="type" value="text" /> Text Summary</label>
    </div>
    <input type="text" name="url" placeholder="https://example.com" />
    <div class="field-error" data-field="customerInfo.url"></div>
    <textarea name="text" class="hidden" placeholder="Company Name: Acme Corp&#10;What they do..."></textarea>
    <div class="field-error" data-field="customerInfo.type"></div>

    <div id="form-error" class="error"></div>
    <div class="actions"><button type="submit" id="generate">Generate Script</button></div>
  </form>

  <div id="script" class="card hidden">
    <h3>Sales script</h3>
    <div id="turns"></div>
    <div id="error" class="error"></div>
    <div class="actions">
      <button class="secondary hidden" id="retry">Retry</button>
      <button class="secondary" id="clear">Clear &amp; New</button>
      <button id="copy">Copy Script</button>
      <button id="download">Download Script</button>
    </div>
  </div>
</div>

<script>
  let sessionId = null;
  let busy = false;
  const $ = (s) => document.querySelector(s);

  async function api(method, path, body) {
    const res = await fetch(path, {
      method, headers: {"Content-Type": "application/json"},
      body: body ? JSON.stringify(body) : undefined,
    });
    const data = await res.json();
    return {ok: res.ok, data};
  }

  async function ensureSession() {
    if (sessionId) return sessionId;
    const {data} = await api("POST", "/api/session");
    sessionId = data.session_id;
    return sessionId;
  }

  function esc(s) {
    const d = document.createElement("div"); d.textContent = s; return d.innerHTML;
  }

  function render(status) {
    const name = status.context ? status.context.businessInfo.userName : "Salesperson";
    let html = "";
    for (const t of status.history) {
      const c = t.chosenProspectResponse;
      html += `<div class="turn"><div class="speaker">${esc(name)}</div>${esc(t.salespersonUtterance)}
        <div class="chosen">Prospect: ${esc(c.responseText)} (${esc(c.responseType)})</div></div>`;
    }
    if (status.current_turn) {
      const t = status.current_turn;
      html += `<div class="turn open"><div class="speaker">${esc(name)}</div>${esc(t.salespersonUtterance)}
        <div class="options">` + t.prospectResponseOptions.map((o, i) =>
          `<button class="opt-${o.responseType}" data-index="${i}">${esc(o.responseText)}</button>`).join("") +
        `</div></div>`;
    }
    $("#turns").innerHTML = html;
    $("#script").classList.toggle("hidden", status.state === "awaiting_input");
    $("#retry").classList.toggle("hidden", !status.stalled);
    $("#error").textContent = status.last_error ? status.last_error.error : "";
    document.querySelectorAll("#turns [data-index]").forEach((b) =>
      b.addEventListener("click", () => respond(parseInt(b.dataset.index, 10))));
  }

  async function refresh() {
    const {data} = await api("GET", `/api/session/${sessionId}/status`);
    render(data);
  }

  function showFieldErrors(err) {
    document.querySelectorAll(".field-error").forEach((e) => e.textContent = "");
    $("#form-error").textContent = "";
    if (err && err.field) {
      const el = document.querySelector(`.field-error[data-field="${err.field}"]`);
      if (el) { el.textContent = err.error; return; }
    }
    if (err) $("#form-error").textContent = err.error;
  }

  $("#form").addEventListener("change", () => {
    const type = document.querySelector("input[name=type]:checked").value;
    $("input[name=url]").classList.toggle("hidden", type !== "url");
    $("textarea[name=text]").classList.toggle("hidden", type !== "text");
  });

  $("#form").addEventListener("submit", async (ev) => {
    ev.preventDefault();
    if (busy) return;
    busy = true; $("#generate").disabled = true; $("#generate").textContent = "Generating...";
    const f = new FormData($("#form"));
    const type = f.get("type");
    const body = {
      businessInfo: {
        userName: f.get("userName"), businessName: f.get("businessName"),
        productService: f.get("productService"), salesGoals: f.get("salesGoals"),
      },
      customerInfo: type === "url" ? {type, url: f.get("url")} : {type, text: f.get("text")},
    };
    await ensureSession();
    const {ok, data} = await api("POST", `/api/session/${sessionId}/start`, body);
    showFieldErrors(ok ? null : data);
    if (ok) render(data);
    busy = false; $("#generate").disabled = false; $("#generate").textContent = "Generate Script";
  });

  async function respond(index) {
    if (busy) return;
    busy = true;
    document.querySelectorAll("#turns [data-index]").forEach((b) => b.disabled = true);
    await api("POST", `/api/session/${sessionId}/respond`, {index});
    await refresh();
    busy = false;
  }

  $("#retry").addEventListener("click", async () => {
    if (busy) return;
    busy = true;
    await api("POST", `/api/session/${sessionId}/retry`);
    await refresh();
    busy = false;
  });

  $("#clear").addEventListener("click", async () => {
    await api("POST", `/api/session/${sessionId}/clear`);
    $("#form").reset();
    await refresh();
  });

  async function transcriptText() {
    const res = await fetch(`/api/session/${sessionId}/transcript`);
    return res.text();
  }

  $("#copy").addEventListener("click", async () => {
    try {
      await navigator.clipboard.writeText(await transcriptText());
      $("#error").textContent = "";
    } catch (e) {
      $("#error").textContent = "Could not copy script to clipboard.";
    }
  });

  $("#download").addEventListener("click", () => {
    window.location = `/api/session/${sessionId}/transcript?download=1`;
  });
</script>
</body>
</html>
"""


# ---------------------------------------------------------------------------
# HTTP request handler
# ---------------------------------------------------------------------------
class Handler(BaseHTTPRequestHandler):
    def do_GET(self):
        parsed = urlparse(self.path)
        path = parsed.path

        if path == "/healthz":
            self.send_response(200)
            self.send_header("Content-Type", "text/plain")
            self.end_headers()
            self.wfile.write(b"ok")
            return
        elif path == "/":
            self._serve_html()
        elif path.startswith("/api/session/") and path.endswith("/status"):
            self._serve_session_status(path)
        elif path.startswith("/api/session/") and path.endswith("/events"):
            self._serve_session_events(path)
        elif path.startswith("/api/session/") and path.endswith("/transcript"):
            self._serve_transcript(path)
        else:
            self.send_error(404)

    def do_POST(self):
        parsed = urlparse(self.path)
        path = parsed.path

        if path == "/api/session":
            self._create_session()
        elif path.endswith("/start"):
            self._handle_start(path)
        elif path.endswith("/respond"):
            self._handle_respond(path)
        elif path.endswith("/retry"):
            self._handle_retry(path)
        elif path.endswith("/clear"):
            self._handle_clear(path)
        else:
            self.send_error(404)

    def do_HEAD(self):
        self.send_response(200)
        self.send_header("Content-Type", "text/html")
        self.end_headers()

    def do_OPTIONS(self):
        self.send_response(200)
        self._cors_headers()
        self.end_headers()

    def handle_one_request(self):
        """Suppress BrokenPipeError when client disconnects mid-response."""
        try:
            super().handle_one_request()
        except BrokenPipeError:
            pass

    def _cors_headers(self):
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")

    def _json_response(self, data, status=200):
        body = json.dumps(data, default=str, ensure_ascii=False).encode()
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self._cors_headers()
        self.end_headers()
        self.wfile.write(body)

    def _error_response(self, error: ScriptSwiftError):
        self._json_response(error.to_dict(), error_status(error))

    def _run(self, session, coro, action: str):
        """Run a session coroutine and answer with its status or the error."""
        try:
            asyncio.run(coro)
        except ScriptSwiftError as e:
            _logger.warning("%s failed for %s: %s", action, session.session_id, e)
            self._error_response(e)
            return
        except Exception as e:
            _logger.exception("%s crashed for %s", action, session.session_id)
            self._json_response({"error": str(e), "type": type(e).__name__, "retryable": False}, 500)
            return
        self._json_response(session.get_status())

    def _read_body(self) -> dict:
        length = int(self.headers.get("Content-Length", 0))
        if length == 0:
            return {}
        raw = self.rfile.read(length)
        try:
            body = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        # Only JSON objects carry fields; anything else reads as empty
        return body if isinstance(body, dict) else {}

    def _extract_session_id(self, path: str):
        parts = path.strip("/").split("/")
        # /api/session/{id}/...
        if len(parts) >= 3 and parts[0] == "api" and parts[1] == "session":
            return parts[2]
        return None

    def _session_or_404(self, path: str):
        sid = self._extract_session_id(path)
        session = _get_or_none(sid) if sid else None
        if not session:
            self._json_response({"error": "Session not found"}, 404)
        return session

    # --- Endpoints ---

    def _serve_html(self):
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.end_headers()
        self.wfile.write(HTML_PAGE.encode())

    def _create_session(self):
        # Clean expired sessions
        expired = [k for k, v in _sessions.items() if v.is_expired()]
        for k in expired:
            del _sessions[k]

        session = ConversationSession()
        _sessions[session.session_id] = session
        _logger.info("New session: %s", session.session_id)
        self._json_response({"session_id": session.session_id})

    def _handle_start(self, path: str):
        session = self._session_or_404(path)
        if not session:
            return

        self._run(session, session.start(self._read_body()), "Start")

    def _handle_respond(self, path: str):
        session = self._session_or_404(path)
        if not session:
            return

        body = self._read_body()
        option = body.get("option")
        if option is None and "index" in body:
            options = session.current_turn.prospect_response_options if session.current_turn else ()
            try:
                index = int(body["index"])
                if index < 0:
                    raise IndexError(index)
                option = options[index]
            except (ValueError, TypeError, IndexError):
                self._error_response(ValidationError("index", "Invalid response index"))
                return
        if option is None:
            self._error_response(ValidationError("option", "No response selected"))
            return

        self._run(session, session.select_response(option), "Next turn")

    def _handle_retry(self, path: str):
        session = self._session_or_404(path)
        if not session:
            return

        self._run(session, session.retry_next_turn(), "Retry")

    def _handle_clear(self, path: str):
        session = self._session_or_404(path)
        if not session:
            return
        session.clear()
        self._json_response(session.get_status())

    def _serve_session_status(self, path: str):
        session = self._session_or_404(path)
        if not session:
            return
        self._json_response(session.get_status())

    def _serve_session_events(self, path: str):
        session = self._session_or_404(path)
        if not session:
            return

        params = parse_qs(urlparse(self.path).query)
        try:
            since = max(0, int(params.get("since", ["0"])[0]))
        except ValueError:
            self._error_response(ValidationError("since", "since must be an integer"))
            return
        events = session.events[since:]
        self._json_response({"events": events, "total": len(session.events)})

    def _serve_transcript(self, path: str):
        session = self._session_or_404(path)
        if not session:
            return

        params = parse_qs(urlparse(self.path).query)
        body = session_transcript(session).encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        if params.get("download"):
            self.send_header("Content-Disposition", f'attachment; filename="{TRANSCRIPT_FILENAME}"')
        self._cors_headers()
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        _logger.debug("[%s] %s", self.address_string(), format % args)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser()
    parser.add_argument("--port", type=int, default=PORT)
    args = parser.parse_args()

    # Ensure log output is visible immediately when piped
    sys.stdout.reconfigure(line_buffering=True)

    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    print(f"\n  ScriptSwift — Cold Call Script Builder")
    print(f"  {'=' * 40}")
    print(f"  Server:  http://localhost:{args.port}")
    print(f"  Model:   {ScriptConfig.CLAUDE_MODEL}")
    print()

    server = HTTPServer(("", args.port), Handler)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\n  Shutting down.")
        server.server_close()
