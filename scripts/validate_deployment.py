"""
Pre-Deploy and Smoke Test Script.

Runs the application in-process and executes a full smoke test:
1. Health Check
2. Fleet Check
3. Order -> Payment -> Allocation -> Delivery
"""

import sys
import uuid

from fastapi.testclient import TestClient
from backend.app.main import app

API = "/v1"


def print_step(step, msg):
    print(f"[{step}] {msg}")


def fail(msg):
    print(f"❌ FAILURE: {msg}")
    sys.exit(1)


def success(msg):
    print(f"✅ {msg}")


def main():
    print("🚀 Starting Deployment Validation...")

    with TestClient(app) as client:
        # 1. Health Check
        print_step("PRE-DEPLOY", "Checking /health...")
        response = client.get("/health")
        if response.status_code != 200:
            fail(f"Health check failed: {response.status_code} {response.text}")
        health = response.json()
        if health["event_channel"] != "up":
            print("⚠️ Event channel unreachable, events will be dropped")
        success("Health check passed")

        # 2. Fleet must exist for allocation
        print_step("VERIFY", "Checking fleet...")
        trucks = client.get(f"{API}/fleet/trucks/available").json()
        if not trucks:
            fail("No available trucks. Run backend/seed_fleet.py first")
        success(f"Found {len(trucks)} available trucks")

        # 3. Smoke Test: full order flow
        print_step("SMOKE", "Running Order -> Payment -> Delivery Flow...")
        order = client.post(f"{API}/pickups", json={
            "company_name": "Deployment Smoke Test",
            "quantity": 1,
            "recipient_name": "Smoke Receiver",
        })
        if order.status_code != 201:
            fail(f"Order placement failed: {order.status_code} {order.text}")
        order = order.json()

        payment = client.post(f"{API}/webhooks/payments", json={
            "transaction_number": f"SMOKE-{uuid.uuid4().hex[:12]}",
            "status": "SUCCESS",
            "amount": order["amount_due"],
            "timestamp": "2026-01-05T09:00:00Z",
            "reference": order["reference_number"],
        })
        if payment.status_code != 200 or payment.json()["payment_status"] != "PAID":
            fail(f"Payment reconciliation failed: {payment.status_code} {payment.text}")
        success("Payment reconciled")

        ld_id = order["logistics_details_id"]
        details = client.get(f"{API}/logistics/{ld_id}").json()
        if details["logistics_status"] == "PENDING_PLANNING":
            allocated = client.post(f"{API}/logistics/{ld_id}/allocate")
            if allocated.status_code != 200:
                fail(f"Allocation failed: {allocated.status_code} {allocated.text}")
        success("Trucks allocated")

        for status in ("COLLECTED", "OUT_FOR_DELIVERY", "DELIVERED"):
            res = client.post(f"{API}/logistics/{ld_id}/status", json={"status": status})
            if res.status_code != 200:
                fail(f"Could not move to {status}: {res.status_code} {res.text}")
        success("Order delivered")

    success("Deployment Validation Passed!")


if __name__ == "__main__":
    main()
