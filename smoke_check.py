#!/usr/bin/env python3
"""
Manual smoke check against a running PM Workbench API.

    python smoke_check.py                      # http://localhost:8787
    BASE_URL=https://my-deploy python smoke_check.py

Calls that need OpenAI are skipped when the server reports no key.
"""

import os
import sys

import requests

BASE_URL = os.getenv("BASE_URL", "http://localhost:8787").rstrip("/")
TIMEOUT = 120


def check_health():
    print("🩺 Health")
    response = requests.get(f"{BASE_URL}/api/health", timeout=10)
    response.raise_for_status()
    body = response.json()
    print(f"  provider={body['provider']} hasKey={body['hasKey']}")
    return body


def check_render():
    print("📝 Markdown rendering")
    response = requests.post(f"{BASE_URL}/api/render", json={"markdown": "# Title\n- **one**\n- two"}, timeout=10)
    html = response.json().get("html", "")
    ok = html.startswith("<h1") and html.count("<ul") == html.count("</ul>") == 1
    print(f"  {'✅' if ok else '❌'} {html[:80]}...")
    return ok


def check_strategy():
    print("🧭 Strategy brief (may take a minute)")
    response = requests.post(f"{BASE_URL}/api/pm/strategy", json={
        "market": "B2B SaaS",
        "segment": "Mid-market finance teams",
        "goals": ["Reduce month-end close time"],
        "constraints": ["SOC2 required"],
    }, timeout=TIMEOUT)
    if response.status_code != 200:
        print(f"  ❌ {response.status_code}: {response.json().get('error')}")
        return None
    data = response.json()["data"]
    print(f"  ✅ North Star: {data['northStar']}")
    print(f"  PRD html: {len(data['prdHtml'])} chars")
    return data


def check_customer_chat():
    print("💬 Customer advisory")
    response = requests.post(f"{BASE_URL}/api/pm/customer-advisory", json={
        "message": "What slows down your month-end close?",
        "customerSegment": "Mid-market finance teams",
        "market": "B2B SaaS",
    }, timeout=TIMEOUT)
    if response.status_code != 200:
        print(f"  ❌ {response.status_code}: {response.json().get('error')}")
        return []
    reply = response.json()["data"]["message"]
    print(f"  ✅ {reply[:120]}")
    return [
        {"role": "user", "content": "What slows down your month-end close?"},
        {"role": "assistant", "content": reply},
    ]


def check_schedule(strategy, messages):
    print("📅 14-day schedule (calendar sync without a session)")
    response = requests.post(f"{BASE_URL}/api/pm/automation/sync-calendar", json={
        "strategyData": strategy,
        "customerMessages": messages,
    }, timeout=TIMEOUT)
    body = response.json()
    plan = (body.get("data") or {}).get("plan") or []
    print(f"  status={response.status_code} days={len(plan)} needsAuth={body.get('needsAuth')}")
    return bool(plan)


def check_records():
    print("🗂️  Entities & audit")
    entity = requests.post(f"{BASE_URL}/api/entities", json={"name": "Smoke Co"}, timeout=10).json()
    fetched = requests.get(f"{BASE_URL}/api/entities/{entity['id']}", timeout=10)
    audit = requests.post(f"{BASE_URL}/api/audit", json={"entityId": entity["id"], "action": "smoke"}, timeout=10).json()
    ok = fetched.status_code == 200 and audit["entityName"] == entity["id"]
    print(f"  {'✅' if ok else '❌'} entity={entity['id']} audit={audit['id']}")
    return ok


if __name__ == "__main__":
    print(f"🚀 PM Workbench smoke check against {BASE_URL}")
    print("=" * 50)

    try:
        health = check_health()
    except requests.RequestException as e:
        print(f"❌ Server not reachable: {e}")
        sys.exit(1)

    results = [check_render(), check_records()]

    if health["hasKey"]:
        strategy = check_strategy()
        messages = check_customer_chat()
        results.append(strategy is not None and bool(messages))
        if strategy and messages:
            results.append(check_schedule(strategy, messages))
    else:
        print("⏭️  No OPENAI_API_KEY on the server, skipping model-backed checks")

    success = all(results)
    print("\n🎉 All checks passed" if success else "\n❌ Some checks failed")
    sys.exit(0 if success else 1)
