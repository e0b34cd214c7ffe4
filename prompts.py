import json
from datetime import datetime
from typing import Any, Dict, List, Optional

###############################################
# Strategy brief
###############################################

STRATEGY_JSON_SHAPE = """{
  "executiveSummary": "2-3 paragraph executive summary: product vision, opportunity, strategic approach.",
  "northStar": "One clear North Star metric (1-2 sentences defining success).",
  "marketOpportunity": "Market size, trends, timing and why now. Use numbers where possible.",
  "competitiveLandscape": "Main players, what they do well or poorly, and where the whitespace is.",
  "strategicRecommendations": ["Specific, actionable recommendation", "..."],
  "icps": [
    {
      "segment": "Customer segment name",
      "description": "Who they are",
      "painPoints": ["Pain point with context", "..."],
      "opportunities": ["Opportunity with rationale", "..."],
      "buyingBehavior": "How this segment decides to buy"
    }
  ],
  "successMetrics": [{"metric": "Metric name", "target": "Target value and timeline", "rationale": "Why it matters"}],
  "goToMarketConsiderations": ["How to bring this to market", "..."],
  "risksAndChallenges": [{"risk": "Risk", "impact": "high|medium|low", "mitigation": "How to address it"}],
  "timelineAndMilestones": "Phased timeline with key milestones.",
  "constraints": __CONSTRAINTS__,
  "prd": "# Product Requirements Document\\n\\n## Vision\\n\\n...\\n\\n## Problem Statement\\n\\n...\\n\\n## Target Users\\n\\n...\\n\\n## Key Features\\n\\n...\\n\\n## User Experience\\n\\n...\\n\\n## Success Metrics\\n\\n...\\n\\n## Timeline\\n\\n...\\n\\n## Risks & Mitigation\\n\\n...\\n\\n## Dependencies\\n\\n..."
}"""

STRATEGY_PROMPT = """
You are a senior product strategist with 15+ years at leading technology companies, advising a team on how to build a successful product.

PRODUCT IDEA CONTEXT:
- Target Market: {market}
- Customer Segment: {segment}
- Business Goals: {goals}
- Constraints: {constraints}

Write a product strategy brief that reads like an executive advisory document: insightful, specific and actionable.

Return JSON with exactly this structure:
{shape}

Be data-driven where possible. Return ONLY valid JSON, no markdown code blocks.
"""


def _joined(values: Optional[List[Any]], default: str) -> str:
    return ", ".join(str(v) for v in values) if values else default


def strategy_prompt(market: str, segment: str, goals: List[str], constraints: List[str]) -> str:
    shape = STRATEGY_JSON_SHAPE.replace("__CONSTRAINTS__", json.dumps(constraints or []))
    return STRATEGY_PROMPT.format(
        market=market or "Not specified - analyze and recommend",
        segment=segment or "Not specified - identify and define",
        goals=_joined(goals, "Not specified - suggest strategic goals"),
        constraints=_joined(constraints, "None specified"),
        shape=shape,
    ).strip()


###############################################
# Customer advisory (simulated customer)
###############################################

CUSTOMER_PERSONA_RULES = """
IMPORTANT INSTRUCTIONS:
- Respond as an actual user or customer, NOT as an AI assistant
- Be honest and realistic: real pain points, frustrations, needs and wishes
- Use natural, conversational language and show emotion when it fits
- Be specific about your experiences, workflow and the tools or competitors you use
- If you don't know something or haven't used a feature, say so the way a customer would
- Don't be overly positive; say what would make you switch or stay

Your role: help the product manager understand what customers like you actually need, want and experience.
"""


def customer_system_prompt(segment: str = "", market: str = "") -> str:
    who = "You are a real customer"
    if market:
        who += f" in the {market} market"
    if segment:
        who += f' from this segment: "{segment}"'
    return f"{who}.\n{CUSTOMER_PERSONA_RULES}".strip()


def customer_prompt(message: str, history: List[Dict[str, Any]]) -> str:
    lines: List[str] = []
    for msg in history or []:
        if msg.get("role") == "user":
            lines.append(f"PM: {msg.get('content', '')}")
        elif msg.get("role") == "assistant":
            lines.append(f"Customer: {msg.get('content', '')}")
    conversation = ("Previous conversation:\n" + "\n".join(lines) + "\n\n") if lines else ""
    return (
        f"{conversation}"
        f'Current question from PM: "{message}"\n\n'
        "Respond as a real customer would. Keep it conversational and natural "
        "(usually 2-4 sentences, longer only if the question warrants it)."
    )


###############################################
# 14-day schedule
###############################################

SCHEDULE_PROMPT = """
You are a product management expert. Create a detailed 2-week (14-day) action plan for a product manager based on their strategy and customer insights.

STRATEGY CONTEXT:
- North Star Metric: {north_star}
- Strategic Recommendations: {recommendations}
- Market Opportunity: {market_opportunity}
- Timeline: {timeline}
- Risks: {risks}

CUSTOMER INSIGHTS FROM CHAT:
{customer_insights}

The schedule must address the recommendations, use the customer insights, build toward the North Star metric, mitigate the risks and follow the timeline.

Return a JSON array with 14 items, one per day. Each item has:
- day: number (1-14)
- task: string (specific, actionable task title)
- description: string (what to accomplish)
- duration: string (e.g. "2 hours", "3 hours", "half day")
- priority: "high" | "medium" | "low"
- category: string (e.g. "Research", "Development", "Customer Validation", "Planning")

Return ONLY a valid JSON array, no markdown or extra text.
"""


def risk_label(risk: Any) -> str:
    if isinstance(risk, dict):
        return str(risk.get("risk", ""))
    return str(risk)


def customer_insights(messages: List[Dict[str, Any]], last: Optional[int] = None, sep: str = "\n\n") -> str:
    replies = [str(m.get("content", "")) for m in messages or [] if m.get("role") == "assistant"]
    if last is not None:
        replies = replies[-last:]
    return sep.join(replies)


def schedule_prompt(strategy: Dict[str, Any], messages: List[Dict[str, Any]]) -> str:
    return SCHEDULE_PROMPT.format(
        north_star=strategy.get("northStar") or "",
        recommendations=", ".join(str(r) for r in strategy.get("strategicRecommendations") or []),
        market_opportunity=(strategy.get("marketOpportunity") or "")[:500],
        timeline=(strategy.get("timelineAndMilestones") or "")[:300],
        risks=", ".join(risk_label(r) for r in strategy.get("risksAndChallenges") or []),
        customer_insights=customer_insights(messages)[:1000],
    ).strip()


###############################################
# Audio summary script
###############################################

AUDIO_SUMMARY_PROMPT = """
You are writing a concise audio summary for a busy product manager who wants their PM Workbench results while on the go.

Write a natural, conversational 2-3 minute script (about 300-400 words) covering:

1. **Executive Summary** (30 seconds)
   {executive_summary}

2. **North Star Metric** (15 seconds)
   {north_star}

3. **Strategic Recommendations** (60 seconds)
   {recommendations}

4. **Customer Insights** (45 seconds)
   {customer_feedback}

5. **Action Plan** (30 seconds)
   {schedule}

Sound like a professional assistant briefing the manager ("Here's your PM Workbench summary...", "Your customers are telling you...", "Your action plan includes..."). Keep it clear and actionable.
"""


def audio_summary_prompt(strategy: Dict[str, Any], messages: List[Dict[str, Any]], plan: List[Dict[str, Any]]) -> str:
    summary = strategy.get("executiveSummary") or ""
    north_star = strategy.get("northStar") or ""
    recommendations = strategy.get("strategicRecommendations") or []
    feedback = customer_insights(messages, last=5, sep=". ")
    return AUDIO_SUMMARY_PROMPT.format(
        executive_summary=f"Strategy: {summary[:500]}" if summary else "No strategy generated yet.",
        north_star=f"North Star: {north_star}" if north_star else "No North Star defined yet.",
        recommendations=(
            "Recommendations: " + ". ".join(str(r) for r in recommendations[:4]) if recommendations else "No recommendations yet."
        ),
        customer_feedback=f"Customer feedback: {feedback[:400]}" if feedback else "No customer conversations yet.",
        schedule=(
            f"A {len(plan)}-day schedule has been created with {len(plan)} tasks."
            if plan
            else "No schedule generated yet."
        ),
    ).strip()


###############################################
# Voice assistant Q&A
###############################################

VOICE_INSTRUCTIONS = """
Instructions:
- Answer naturally and conversationally, in 2-3 sentences
- For meetings, schedule or calendar questions, cite specific calendar events with dates and times
- For the automation plan, cite specific days from the plan
- For strategy or customer questions, use the strategy data or customer insights
- If the information isn't in the workbench data or calendar, say so politely

Answer:"""


def _event_line(event: Dict[str, Any]) -> List[str]:
    start, end = event.get("start") or "", event.get("end") or ""
    try:
        start_dt = datetime.fromisoformat(start.replace("Z", "+00:00"))
        end_dt = datetime.fromisoformat(end.replace("Z", "+00:00"))
        when = f"on {start_dt.date().isoformat()} from {start_dt:%H:%M} to {end_dt:%H:%M}"
    except ValueError:
        when = f"on {start}"
    lines = [f"- {event.get('title', 'No Title')} {when}"]
    if event.get("location"):
        lines.append(f"  Location: {event['location']}")
    description = event.get("description") or ""
    if description:
        lines.append(f"  Description: {description[:100]}{'...' if len(description) > 100 else ''}")
    return lines


def voice_prompt(
    question: str,
    strategy: Optional[Dict[str, Any]],
    messages: List[Dict[str, Any]],
    plan: List[Dict[str, Any]],
    history: List[Dict[str, Any]],
    calendar_events: List[Dict[str, Any]],
    calendar_connected: bool = False,
) -> str:
    ctx: List[str] = [
        "You are a helpful AI assistant for a product manager. "
        "Answer questions based on the following workbench data:",
        "",
    ]

    if strategy:
        ctx.append("STRATEGY DATA:")
        ctx.append(f"- Executive Summary: {strategy.get('executiveSummary') or 'Not available'}")
        ctx.append(f"- North Star: {strategy.get('northStar') or 'Not available'}")
        if strategy.get("strategicRecommendations"):
            ctx.append(f"- Recommendations: {', '.join(str(r) for r in strategy['strategicRecommendations'])}")
        ctx.append("")

    if plan:
        ctx.append("SCHEDULE/AUTOMATION PLAN:")
        for index, item in enumerate(plan):
            day = item.get("day") or index + 1
            task = item.get("task") or item.get("title") or "Task"
            ctx.append(f"- Day {day} ({item.get('date') or 'Date TBD'}): {task}")
            if item.get("description"):
                ctx.append(f"  Description: {item['description']}")
            if item.get("duration"):
                ctx.append(f"  Duration: {item['duration']}")
        ctx.append("")

    insights = customer_insights(messages, last=5, sep="\n")
    if insights:
        ctx.append("CUSTOMER INSIGHTS:")
        ctx.append(insights)
        ctx.append("")

    if calendar_events:
        ctx.append("GOOGLE CALENDAR EVENTS:")
        for event in calendar_events:
            ctx.extend(_event_line(event))
        ctx.append("")
    elif calendar_connected:
        ctx.append("GOOGLE CALENDAR: Connected but no events found in the next 30 days.")
        ctx.append("")

    if history:
        ctx.append("Previous conversation:")
        for msg in history[-5:]:
            speaker = "User" if msg.get("role") == "user" else "Assistant"
            ctx.append(f"{speaker}: {msg.get('content', '')}")
        ctx.append("")

    ctx.append(f'User\'s Question: "{question}"')
    return "\n".join(ctx) + "\n" + VOICE_INSTRUCTIONS


###############################################
# Vendor risk analysis
###############################################

RISK_PROMPT = """
You are a risk analyst. Analyze this vendor/client onboarding data{documents_clause}.

Company: {company_name} ({company_type})
Country: {country}
Contact: {contact_email}
EIN: {ein}
Has Security Controls: {has_controls}
Handles PII: {has_pii}
Document Checklist: {documents}
Uploaded Files: {uploaded_count}
{document_focus}
Return risk level (LOW/MEDIUM/HIGH) and 3-5 specific, actionable reasons as bullet points.
"""

RISK_DOCUMENT_FOCUS = """
ANALYZE THE UPLOADED DOCUMENTS. Look for:
- Insurance coverage amounts and expiry dates
- SOC2/ISO certifications and scope
- Security policies and controls
- Contract terms and liability clauses
- W9 accuracy and completeness
- Any red flags or compliance gaps
"""


def risk_prompt(data: Dict[str, Any], with_documents: bool) -> str:
    return RISK_PROMPT.format(
        documents_clause=" and the uploaded documents" if with_documents else "",
        company_name=data.get("companyName", ""),
        company_type=data.get("companyType", ""),
        country=data.get("country", ""),
        contact_email=data.get("contactEmail", ""),
        ein=data.get("ein", ""),
        has_controls="Yes" if data.get("hasControls") else "No",
        has_pii="Yes" if data.get("hasPII") else "No",
        documents=", ".join(str(d) for d in data.get("documents") or []) or "None",
        uploaded_count=len(data.get("uploadedFiles") or []),
        document_focus=RISK_DOCUMENT_FOCUS if with_documents else "",
    ).strip()
