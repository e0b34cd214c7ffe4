import base64
import logging
import re
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from openai import APIError

import prompts
from llm import ModelOutputError, ask_model, parse_model_json
from markdown_render import render
from retry import DEFAULT_POLICY, RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_PRD = "# Product Brief\n\n## Vision\n\n..."

###############################################
# Strategy agent
###############################################

async def _strategy_once(prompt: str) -> Dict[str, Any]:
    text = await ask_model(prompt)
    doc = parse_model_json(text)
    if not isinstance(doc, dict):
        raise ModelOutputError("Strategy response was not a JSON object")
    return doc


def normalize_strategy(doc: Dict[str, Any], market: str, segment: str, constraints: List[str]) -> Dict[str, Any]:
    prd = doc.get("prd") or DEFAULT_PRD
    return {
        "executiveSummary": doc.get("executiveSummary") or "",
        "northStar": doc.get("northStar") or f"Build the leading {market or 'product'} solution for {segment or 'customers'}",
        "marketOpportunity": doc.get("marketOpportunity") or "",
        "competitiveLandscape": doc.get("competitiveLandscape") or "",
        "strategicRecommendations": doc.get("strategicRecommendations") or [],
        "icps": doc.get("icps") or [],
        "successMetrics": doc.get("successMetrics") or [],
        "goToMarketConsiderations": doc.get("goToMarketConsiderations") or [],
        "risksAndChallenges": doc.get("risksAndChallenges") or [],
        "timelineAndMilestones": doc.get("timelineAndMilestones") or "",
        "constraints": doc.get("constraints") or constraints or [],
        "prd": prd,
        "prdHtml": render(prd),
    }


async def generate_strategy(
    market: str = "",
    segment: str = "",
    goals: Optional[List[str]] = None,
    constraints: Optional[List[str]] = None,
    policy: RetryPolicy = DEFAULT_POLICY,
) -> Dict[str, Any]:
    """Strategy brief from the model, retried while the answer is not parseable JSON."""
    goals = goals or []
    constraints = constraints or []
    prompt = prompts.strategy_prompt(market, segment, goals, constraints)
    doc = await policy.call(_strategy_once, prompt)
    return normalize_strategy(doc, market, segment, constraints)


###############################################
# Customer advisory agent
###############################################

async def customer_reply(
    message: str,
    history: Optional[List[Dict[str, Any]]] = None,
    segment: str = "",
    market: str = "",
) -> str:
    text = await ask_model(
        prompts.customer_prompt(message, history or []),
        system=prompts.customer_system_prompt(segment, market),
        temperature=0.8,
    )
    return text.strip()


###############################################
# Automation agent (14-day schedule)
###############################################

def date_plan(items: List[Dict[str, Any]], start: date) -> List[Dict[str, Any]]:
    """Stamp consecutive ISO dates from ``start`` and mark every item planned."""
    return [
        {**item, "date": (start + timedelta(days=index)).isoformat(), "status": "planned"}
        for index, item in enumerate(items)
    ]


async def generate_schedule(
    strategy: Dict[str, Any],
    customer_messages: List[Dict[str, Any]],
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """A 14-day plan starting tomorrow, built from the strategy and the customer chat."""
    text = await ask_model(prompts.schedule_prompt(strategy, customer_messages))
    items = parse_model_json(text)
    if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
        raise ModelOutputError("Schedule response was not a JSON array of objects")
    start = (today or date.today()) + timedelta(days=1)
    return date_plan(items, start)


###############################################
# Audio summary & voice assistant
###############################################

async def audio_summary_text(
    strategy: Dict[str, Any],
    customer_messages: List[Dict[str, Any]],
    plan: List[Dict[str, Any]],
) -> str:
    text = await ask_model(prompts.audio_summary_prompt(strategy, customer_messages, plan))
    return text.strip()


async def answer_question(
    question: str,
    strategy: Optional[Dict[str, Any]] = None,
    customer_messages: Optional[List[Dict[str, Any]]] = None,
    plan: Optional[List[Dict[str, Any]]] = None,
    history: Optional[List[Dict[str, Any]]] = None,
    calendar_events: Optional[List[Dict[str, Any]]] = None,
    calendar_connected: bool = False,
) -> str:
    prompt = prompts.voice_prompt(
        question,
        strategy,
        customer_messages or [],
        plan or [],
        history or [],
        calendar_events or [],
        calendar_connected=calendar_connected,
    )
    return (await ask_model(prompt)).strip()


###############################################
# Vendor risk scoring
###############################################

RISK_SCORES = {"HIGH": 85, "MEDIUM": 55, "LOW": 25}
# A bullet needs whitespace after it, so "**Bold**" lines are not reasons.
_REASON_MARKER_RE = re.compile(r"^(?:[-*•]\s+|\d+[.)]\s*)")


def parse_risk_text(text: str) -> Dict[str, Any]:
    if "HIGH" in text:
        level = "HIGH"
    elif "MEDIUM" in text:
        level = "MEDIUM"
    else:
        level = "LOW"

    reasons = []
    for line in text.split("\n"):
        stripped = line.strip()
        if not _REASON_MARKER_RE.match(stripped):
            continue
        reason = _REASON_MARKER_RE.sub("", stripped).strip()
        if reason:
            reasons.append(reason)

    return {
        "riskLevel": level,
        "reasons": reasons[:5] or ["Analysis complete based on submitted data"],
        "score": RISK_SCORES[level],
    }


def _file_attachments(files: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    parts = []
    for index, f in enumerate(files):
        data = f.get("base64") or ""
        # Reject garbage early; the API error for a bad data URL is much less helpful.
        base64.b64decode(data, validate=True)
        mime = f.get("type") or "application/pdf"
        if mime.startswith("image/"):
            parts.append({"type": "input_image", "image_url": f"data:{mime};base64,{data}"})
        else:
            parts.append({
                "type": "input_file",
                "filename": f.get("name") or f"document-{index + 1}.pdf",
                "file_data": f"data:{mime};base64,{data}",
            })
    return parts


async def assess_risk(data: Dict[str, Any]) -> Dict[str, Any]:
    """Model-based onboarding risk. Documents are attached when present; on attachment
    failure the text-only analysis is used instead."""
    files = data.get("uploadedFiles") or []
    text: Optional[str] = None

    if files:
        try:
            text = await ask_model(prompts.risk_prompt(data, with_documents=True), attachments=_file_attachments(files))
        except (ValueError, TypeError, APIError) as e:
            logger.warning("Document analysis failed, falling back to text-only: %s", e)

    if text is None:
        text = await ask_model(prompts.risk_prompt(data, with_documents=False))

    logger.info("Risk analysis result: %s", text[:200])
    return parse_risk_text(text)


def fallback_risk_score(data: Dict[str, Any]) -> Dict[str, Any]:
    score = 20
    if data.get("hasPII"):
        score += 30
    if not data.get("hasControls"):
        score += 25
    if data.get("country") != "USA":
        score += 15
    level = "HIGH" if score > 70 else "MEDIUM" if score > 40 else "LOW"
    return {"riskLevel": level, "reasons": ["Rule-based fallback"], "score": score}
