import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

import agents
import google_calendar
import settings
import tts
from markdown_render import render, speech_text
from retry import DEFAULT_POLICY
from settings import log_usage, read_usage_logs
from store import RecordNotFound, RecordStore, SessionTokenStore

logger = logging.getLogger("pm_workbench")

###############################################
# Process-lifetime state (lost on restart)
###############################################
tokens = SessionTokenStore()
entities = RecordStore("entity")
audit_events = RecordStore("audit", timestamp_field="timestamp")
strategy_retry = DEFAULT_POLICY

###############################################
# FastAPI app
###############################################
app = FastAPI(title="PM Workbench API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HTTPException)
async def http_error(request: Request, exc: HTTPException) -> JSONResponse:
    # The workbench frontend reads errors from "error", not FastAPI's "detail".
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code)


###############################################
# Utilities
###############################################

def _trace(agent: str, action: str, input_data: Dict[str, Any], output: str) -> List[Dict[str, Any]]:
    return [{
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "agent": agent,
        "action": action,
        "input": input_data,
        "output": output,
    }]


def _server_error(what: str, e: Exception) -> JSONResponse:
    logger.exception("%s failed", what)
    return JSONResponse({"error": str(e)}, status_code=500)


async def _json_object(req: Request) -> Dict[str, Any]:
    try:
        payload = await req.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body must be valid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return payload


def _frontend_redirect(**params: str) -> RedirectResponse:
    return RedirectResponse(f"{settings.FRONTEND_URL}/workbench?{urlencode(params)}")


def _require_tts_key() -> None:
    if not tts.is_configured():
        raise HTTPException(
            status_code=400,
            detail="ELEVENLABS_API_KEY is required. Please add it to your .env.local file "
                   "(no spaces around the = sign, no quotes around the value).",
        )


OAUTH_NOT_CONFIGURED = (
    "Google OAuth not configured. Please set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET in .env.local"
)

###############################################
# HTML front-end (simple, self-contained)
###############################################

INDEX_HTML = """
<!doctype html>
<html>
<head>
  <meta charset=\"utf-8\" />
  <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\" />
  <title>PM Workbench</title>
  <style>
    body{ font-family: system-ui, -apple-system, sans-serif; margin: 0; padding: 2rem; background: #f4f6f5; color: #2f2b2f; line-height: 1.6; }
    .card{ background: #fff; border-radius: 1rem; padding: 1.5rem; max-width: 56rem; margin: 0 auto 1.5rem; }
    label{ display: block; font-weight: 600; margin-top: .75rem; }
    input{ width: 100%; padding: .5rem; border: 1px solid #d5ddd9; border-radius: .5rem; }
    button{ margin-top: 1rem; padding: .6rem 1.2rem; border: 0; border-radius: .5rem; background: #2996ff; color: #fff; font-weight: 600; cursor: pointer; }
    button:disabled{ opacity: .5; }
    #status{ margin-top: .75rem; color: #6d718a; }
    .list-disc{ list-style: disc; } .ml-4{ margin-left: 1rem; } .mb-2{ margin-bottom: .5rem; }
  </style>
</head>
<body>
  <div class=\"card\">
    <h1>PM Workbench</h1>
    <p>Generate a product strategy brief. The full React workbench talks to the same API.</p>
    <label for=\"market\">Target market</label><input id=\"market\" placeholder=\"e.g. B2B SaaS\" />
    <label for=\"segment\">Customer segment</label><input id=\"segment\" placeholder=\"e.g. Mid-market finance teams\" />
    <label for=\"goals\">Goals (comma separated)</label><input id=\"goals\" />
    <label for=\"constraints\">Constraints (comma separated)</label><input id=\"constraints\" />
    <button id=\"run\">Generate strategy</button>
    <div id=\"status\"></div>
  </div>
  <div class=\"card\" id=\"north-star\" style=\"display:none\"></div>
  <div class=\"card\" id=\"prd\" style=\"display:none\"></div>
  <script>
    const split = (v) => v.split(',').map(s => s.trim()).filter(Boolean);
    async function run(){
      const statusEl = document.getElementById('status');
      document.getElementById('run').disabled = true;
      statusEl.textContent = 'Generating...';
      try{
        const res = await fetch('/api/pm/strategy', {
          method: 'POST',
          headers: {'Content-Type': 'application/json'},
          body: JSON.stringify({
            market: document.getElementById('market').value,
            segment: document.getElementById('segment').value,
            goals: split(document.getElementById('goals').value),
            constraints: split(document.getElementById('constraints').value),
          })
        });
        const data = await res.json();
        if(!res.ok){ throw new Error(data.error || res.statusText); }
        const ns = document.getElementById('north-star');
        ns.textContent = 'North Star: ' + data.data.northStar;
        ns.style.display = 'block';
        const prd = document.getElementById('prd');
        prd.innerHTML = data.data.prdHtml;
        prd.style.display = 'block';
        statusEl.textContent = 'Done.';
      }catch(e){
        statusEl.textContent = 'Error: ' + (e && e.message ? e.message : e);
      }finally{
        document.getElementById('run').disabled = false;
      }
    }
    document.getElementById('run').addEventListener('click', run);
  </script>
</body>
</html>
"""

###############################################
# Routes
###############################################

@app.get("/", response_class=HTMLResponse)
async def index() -> str:
    return INDEX_HTML


@app.get("/api/health")
async def api_health() -> JSONResponse:
    key = settings.OPENAI_API_KEY
    return JSONResponse({"ok": True, "provider": "openai", "hasKey": bool(key), "keyLength": len(key or "")})


@app.post("/api/render")
async def api_render(req: Request) -> JSONResponse:
    payload = await _json_object(req)
    markdown = payload.get("markdown")
    if not isinstance(markdown, str):
        raise HTTPException(status_code=400, detail="markdown (string) is required")
    return JSONResponse({"html": render(markdown)})


# === Strategy agent ===

@app.post("/api/pm/strategy")
async def api_strategy(req: Request) -> JSONResponse:
    payload = await _json_object(req)
    market = (payload.get("market") or "").strip()
    segment = (payload.get("segment") or "").strip()
    goals = payload.get("goals") or []
    constraints = payload.get("constraints") or []

    if not settings.OPENAI_API_KEY:
        raise HTTPException(status_code=500, detail="OPENAI_API_KEY is required. Please add it to your .env.local file.")

    log_usage("strategy_generate", {"market": market, "segment": segment, "goals": len(goals)}, req)
    logger.info("Generating strategy (up to %d attempts)", strategy_retry.max_attempts)
    try:
        data = await agents.generate_strategy(market, segment, goals, constraints, policy=strategy_retry)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Strategy generation failed: %s", e)
        return JSONResponse({
            "error": f"Failed to generate strategy after {strategy_retry.max_attempts} attempts: {e}. "
                     "Please check your API key and try again."
        }, status_code=500)

    return JSONResponse({
        "success": True,
        "data": data,
        "trace": _trace(
            "strategy", "generate_brief",
            {"market": market, "segment": segment, "goals": goals, "constraints": constraints},
            "Generated comprehensive product strategy brief using AI",
        ),
    })


# === Customer advisory agent ===

@app.post("/api/pm/customer-advisory")
async def api_customer_advisory(req: Request) -> JSONResponse:
    payload = await _json_object(req)
    message = (payload.get("message") or "").strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")

    segment = payload.get("customerSegment") or ""
    market = payload.get("market") or ""
    log_usage("customer_chat", {"segment": segment, "market": market}, req)

    try:
        reply = await agents.customer_reply(message, payload.get("conversationHistory") or [], segment, market)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Customer response failed: %s", e)
        return JSONResponse({
            "error": f"Failed to generate customer response: {e}. Please check your API key and try again."
        }, status_code=500)

    return JSONResponse({
        "success": True,
        "data": {"message": reply},
        "trace": _trace(
            "customer-advisory", "chat_response",
            {"message": message, "customerSegment": segment, "market": market},
            "Generated customer response",
        ),
    })


# === Google OAuth ===

@app.get("/api/auth/google")
async def api_auth_google() -> RedirectResponse:
    if not google_calendar.is_configured():
        raise HTTPException(status_code=500, detail=OAUTH_NOT_CONFIGURED)
    return RedirectResponse(google_calendar.authorization_url())


@app.get("/api/auth/google/callback")
async def api_auth_google_callback(code: Optional[str] = None) -> RedirectResponse:
    if not google_calendar.is_configured():
        return _frontend_redirect(error="oauth_not_configured")
    if not code:
        return _frontend_redirect(error="no_code")
    try:
        session_tokens = await google_calendar.exchange_code(code)
    except Exception:
        logger.exception("OAuth token exchange failed")
        return _frontend_redirect(error="auth_failed")
    session_id = tokens.new_session(session_tokens)
    return _frontend_redirect(auth="success", session=session_id)


# === Automation agent ===

@app.post("/api/pm/automation/sync-calendar")
async def api_sync_calendar(req: Request) -> JSONResponse:
    payload = await _json_object(req)
    strategy = payload.get("strategyData")
    messages = payload.get("customerMessages") or []
    session_id = payload.get("sessionId")

    if not strategy:
        raise HTTPException(status_code=400, detail="Strategy data is required. Please generate a strategy first.")
    if not messages:
        raise HTTPException(
            status_code=400,
            detail="Customer chat messages are required. Please have a conversation with the customer chatbot first.",
        )

    log_usage("calendar_sync", {"messages": len(messages), "has_session": bool(session_id)}, req)

    try:
        plan = await agents.generate_schedule(strategy, messages)
    except HTTPException:
        raise
    except Exception as e:
        return _server_error("Schedule generation", e)

    calendar_events = google_calendar.plan_to_events(plan)
    logger.info("Generated %d calendar events from plan", len(calendar_events))

    events_created = 0
    event_links: List[str] = []
    needs_auth = False

    access_token = tokens.access_token(session_id)
    if access_token:
        try:
            events_created, event_links = await google_calendar.create_events(calendar_events, access_token)
        except google_calendar.CalendarAuthError as e:
            logger.warning("Calendar token rejected, dropping session: %s", e)
            tokens.discard(session_id)
            needs_auth = True
        except Exception as e:
            logger.error("Error creating events via API: %s", e)
    elif session_id not in tokens:
        needs_auth = True

    if needs_auth and not google_calendar.is_configured():
        return JSONResponse({
            "success": False,
            "error": OAUTH_NOT_CONFIGURED,
            "data": {
                "plan": plan,
                "calendarEvents": calendar_events,
                "message": "Google Calendar OAuth is not configured. Please add credentials to .env.local",
            },
        }, status_code=500)

    if events_created > 0:
        message = f"Successfully created {events_created} events in your Google Calendar!"
    elif needs_auth:
        message = "Please authenticate with Google Calendar to sync events."
    else:
        message = "Schedule generated successfully. Events will be created after authentication."

    body: Dict[str, Any] = {
        "success": True,
        "needsAuth": needs_auth,
        "data": {
            "plan": plan,
            "calendarEvents": calendar_events,
            "googleCalendarUrl": google_calendar.GOOGLE_CALENDAR_URL,
            "eventsCreated": events_created,
            "eventLinks": event_links,
            "message": message,
        },
        "trace": _trace(
            "automation", "sync_calendar",
            {"strategyData": strategy, "customerMessagesCount": len(messages)},
            f"Created {events_created} events in Google Calendar",
        ),
    }
    if needs_auth:
        body["authUrl"] = google_calendar.authorization_url()
    return JSONResponse(body)


@app.post("/api/pm/automation/calendar")
async def api_automation_calendar_legacy() -> JSONResponse:
    return JSONResponse({"success": True, "data": {"message": "Use /api/pm/automation/sync-calendar instead"}})


@app.post("/api/pm/automation/notion")
async def api_automation_notion_legacy() -> JSONResponse:
    return JSONResponse({"success": True, "data": {"message": "Use /api/pm/automation/sync-calendar instead"}})


# === Calendar ===

@app.get("/api/pm/calendar/events")
async def api_calendar_events(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    time_min: Optional[str] = Query(None, alias="timeMin"),
    time_max: Optional[str] = Query(None, alias="timeMax"),
) -> JSONResponse:
    if not session_id:
        raise HTTPException(status_code=400, detail="Session ID is required. Please authenticate with Google Calendar first.")
    if session_id not in tokens:
        raise HTTPException(status_code=401, detail="Invalid session. Please re-authenticate with Google Calendar.")
    access_token = tokens.access_token(session_id)
    if not access_token:
        raise HTTPException(status_code=401, detail="No access token found. Please re-authenticate.")

    try:
        events = await google_calendar.fetch_events(access_token, time_min, time_max)
    except google_calendar.CalendarAuthError:
        tokens.discard(session_id)
        raise HTTPException(status_code=401, detail="Google Calendar session expired. Please re-authenticate.")
    except Exception as e:
        return _server_error("Fetching calendar events", e)

    return JSONResponse({"success": True, "data": {"events": events, "count": len(events)}})


# === Voice ===

@app.get("/api/pm/audio-summary/voices")
async def api_voices() -> JSONResponse:
    _require_tts_key()
    voices = await tts.list_voices()
    return JSONResponse({"success": True, "data": {"voices": voices}})


@app.post("/api/pm/voice-assistant")
async def api_voice_assistant(req: Request) -> JSONResponse:
    payload = await _json_object(req)
    question = (payload.get("question") or "").strip()
    if not question:
        raise HTTPException(status_code=400, detail="Question is required")
    _require_tts_key()

    session_id = payload.get("sessionId")
    log_usage("voice_question", {"has_session": bool(session_id)}, req)
    logger.info("Processing question: %s", question)

    calendar_events: List[Dict[str, Any]] = []
    access_token = tokens.access_token(session_id)
    if access_token:
        now = datetime.now(timezone.utc)
        try:
            calendar_events = await google_calendar.fetch_events(
                access_token, now.isoformat(), (now + timedelta(days=30)).isoformat()
            )
        except Exception as e:
            logger.warning("Could not fetch calendar events: %s", e)

    try:
        answer = await agents.answer_question(
            question,
            strategy=payload.get("strategyData"),
            customer_messages=payload.get("customerMessages") or [],
            plan=payload.get("automationPlan") or [],
            history=payload.get("conversationHistory") or [],
            calendar_events=calendar_events,
            calendar_connected=bool(session_id),
        )
        audio = await tts.synthesize_base64(speech_text(answer))
    except HTTPException:
        raise
    except Exception as e:
        return _server_error("Voice assistant", e)

    return JSONResponse({
        "success": True,
        "data": {
            "answer": answer,
            "answerHtml": render(answer),
            "audioBase64": audio,
            "question": question,
        },
        "trace": _trace("voice-assistant", "answer_question", {"question": question}, "Generated voice response"),
    })


@app.post("/api/pm/audio-summary")
async def api_audio_summary(req: Request) -> JSONResponse:
    payload = await _json_object(req)
    strategy = payload.get("strategyData")
    messages = payload.get("customerMessages") or []
    plan = payload.get("automationPlan") or []

    if not strategy and not messages and not plan:
        raise HTTPException(
            status_code=400,
            detail="No workbench data available. Please generate strategy, customer chat, or automation schedule first.",
        )
    _require_tts_key()

    log_usage("audio_summary", {
        "has_strategy": bool(strategy),
        "customer_messages": len(messages),
        "plan_items": len(plan),
    }, req)

    try:
        summary = await agents.audio_summary_text(strategy or {}, messages, plan)
        audio = await tts.synthesize_base64(speech_text(summary))
    except HTTPException:
        raise
    except Exception as e:
        return _server_error("Audio summary", e)

    return JSONResponse({
        "success": True,
        "data": {
            "audioBase64": audio,
            "summaryText": summary,
            "duration": "2-3 minutes",
            "message": "Audio summary generated successfully!",
        },
        "trace": _trace(
            "audio-summary", "generate_audio",
            {"hasStrategy": bool(strategy), "customerMessagesCount": len(messages), "automationPlanCount": len(plan)},
            "Generated audio summary",
        ),
    })


# === Risk scoring ===

@app.post("/api/risk-score")
async def api_risk_score(req: Request) -> JSONResponse:
    data = await _json_object(req)
    log_usage("risk_score", {
        "company": data.get("companyName"),
        "uploaded_files": len(data.get("uploadedFiles") or []),
    }, req)
    try:
        result = await agents.assess_risk(data)
    except Exception as e:
        detail = e.detail if isinstance(e, HTTPException) else str(e)
        logger.error("Risk analysis error: %s", detail)
        result = {**agents.fallback_risk_score(data), "error": f"AI analysis failed: {detail}"}
    return JSONResponse(result)


# === Entities & audit ===

@app.get("/api/entities")
async def api_list_entities() -> JSONResponse:
    return JSONResponse(entities.list())


@app.get("/api/entities/{entity_id}")
async def api_get_entity(entity_id: str) -> JSONResponse:
    try:
        return JSONResponse(entities.get(entity_id))
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Entity not found")


@app.post("/api/entities")
async def api_create_entity(req: Request) -> JSONResponse:
    return JSONResponse(entities.create(await _json_object(req)))


@app.put("/api/entities/{entity_id}")
async def api_update_entity(entity_id: str, req: Request) -> JSONResponse:
    fields = await _json_object(req)
    try:
        return JSONResponse(entities.update(entity_id, fields))
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Entity not found")


@app.get("/api/audit")
async def api_list_audit() -> JSONResponse:
    return JSONResponse(audit_events.list())


@app.post("/api/audit")
async def api_create_audit(req: Request) -> JSONResponse:
    fields = await _json_object(req)
    return JSONResponse(audit_events.create(fields, defaults={"entityName": fields.get("entityId") or "Unknown"}))


# === Usage logs ===

@app.get("/api/usage-logs")
async def api_usage_logs() -> JSONResponse:
    """View usage logs for analysis (last 100 entries)."""
    try:
        logs = read_usage_logs(limit=100)
    except OSError as e:
        return JSONResponse({"error": str(e), "message": "Failed to read usage logs"}, status_code=500)
    if not logs:
        return JSONResponse({"logs": [], "message": "No usage logs found"})
    return JSONResponse({"logs": logs, "total_entries": len(logs), "log_file_path": settings.usage_log_file})


###############################################
# Local dev entrypoint
###############################################
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app:app", host="0.0.0.0", port=settings.API_PORT, reload=True)
