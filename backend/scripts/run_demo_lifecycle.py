#!/usr/bin/env python3
"""Walk one shipment through the full lifecycle against a running API.

Steps:
  1) Register (or update) a demo shipment via intake
  2) Re-run compliance if the shipment is still held there
  3) Confirm arrival
  4) Process billing (release + invoice)

Each step's resulting phase and progress is captured; the final summary
is printed as JSON.

Usage:
  PYTHONPATH=backend python3 backend/scripts/run_demo_lifecycle.py
  PYTHONPATH=backend python3 backend/scripts/run_demo_lifecycle.py --base-url http://localhost:8000 --shipment-id DEMO-42
"""

from __future__ import annotations

import argparse
import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

DEFAULT_BASE_URL = "http://localhost:8000"


def demo_shipment(shipment_id: str) -> dict[str, Any]:
    eta = (datetime.now(timezone.utc) + timedelta(days=3)).replace(microsecond=0)
    return {
        "shipment_id": shipment_id,
        "container_no": "MAEU1234567",
        "shipper": "Global Exports Ltd",
        "consignee": "Harbor Retail Inc",
        "hs_code": "850440",
        "commodity": "Power supplies",
        "port": "Rotterdam",
        "destination": "Rotterdam DC",
        "eta": eta.isoformat(),
        "carrier": "Maersk",
        "cost_saved": 850,
        "gross_margin": 1200,
        "source": "api",
    }


def _snapshot(step: str, shipment: dict[str, Any]) -> dict[str, Any]:
    return {
        "step": step,
        "current_phase": shipment.get("current_phase"),
        "phase_progress": shipment.get("phase_progress"),
        "compliance_status": shipment.get("compliance_status"),
        "compliance_issues": shipment.get("compliance_issues", []),
        "monitoring_status": shipment.get("monitoring_status"),
    }


async def _call(client: httpx.AsyncClient, method: str, path: str, **kwargs) -> dict[str, Any]:
    response = await client.request(method, path, **kwargs)
    if response.status_code >= 400:
        raise RuntimeError(f"{method} {path} failed ({response.status_code}): {response.text}")
    return response.json()


async def run_lifecycle(
    shipment_id: str,
    *,
    payload: dict[str, Any] | None = None,
    base_url: str = DEFAULT_BASE_URL,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Drive ``shipment_id`` from intake to a closed invoice and return the step trace."""
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(base_url=base_url, timeout=10.0)

    steps: list[dict[str, Any]] = []
    try:
        shipment = await _call(client, "POST", "/api/v1/shipments", json=payload or demo_shipment(shipment_id))
        steps.append(_snapshot("intake", shipment))

        if shipment["current_phase"] == "compliance":
            shipment = await _call(client, "POST", f"/api/v1/compliance-check/{shipment_id}")
            steps.append(_snapshot("compliance_check", shipment))
            if shipment["compliance_status"] != "ok":
                return {"status": "blocked", "shipment_id": shipment_id, "steps": steps}

        if shipment["current_phase"] == "monitoring":
            shipment = await _call(client, "POST", f"/api/v1/shipments/{shipment_id}/events/arrival")
            steps.append(_snapshot("arrival", shipment))

        if shipment["current_phase"] in ("arrival", "billing") and shipment["phase_progress"]["billing"] != "done":
            shipment = await _call(client, "POST", f"/api/v1/shipments/{shipment_id}/events/billing-processed")
            steps.append(_snapshot("billing_processed", shipment))

        metrics = await _call(client, "GET", "/api/v1/metrics")
    finally:
        if owns_client:
            await client.aclose()

    return {
        "status": "success" if shipment["phase_progress"].get("billing") == "done" else "incomplete",
        "shipment_id": shipment_id,
        "steps": steps,
        "metrics": metrics,
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="Run a shipment through the full lifecycle")
    parser.add_argument("--base-url", default=DEFAULT_BASE_URL)
    parser.add_argument("--shipment-id", default="DEMO-LIFECYCLE-1")
    args = parser.parse_args()

    summary = asyncio.run(run_lifecycle(args.shipment_id, base_url=args.base_url))
    print(json.dumps(summary, indent=2, default=str))
    return 0 if summary["status"] == "success" else 1


if __name__ == "__main__":
    raise SystemExit(main())
