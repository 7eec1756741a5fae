import time
import subprocess
import httpx
import sys
import os
import signal
import uuid

BASE_URL = "http://127.0.0.1:8000"
API_PREFIX = "/v1"


def wait_for_server(retries=10, delay=2):
    url = f"{BASE_URL}/health"
    print(f"Waiting for server at {url}...")
    for i in range(retries):
        try:
            resp = httpx.get(url)
            if resp.status_code == 200:
                print("✅ Server is up!")
                return True
        except httpx.TransportError as e:
            print(f"Connect error: {e}")
        time.sleep(delay)
    print("❌ Server failed to start.")
    return False


def start_server(echo=False):
    env = {**os.environ, "DB_ECHO": "True"} if echo else None
    return subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "backend.app.main:app", "--host", "127.0.0.1", "--port", "8000"],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=env,
    )


def stop_server(proc):
    proc.send_signal(signal.SIGTERM)
    proc.wait()


def run_verification():
    company = f"Persistence Check {uuid.uuid4().hex[:8]}"

    # 1. Start Server (First Run)
    print("\n--- [Step 1] Starting Server (Initial) ---")
    proc = start_server(echo=True)

    try:
        if not wait_for_server():
            server_logs = proc.communicate(timeout=2)
            print("Server Stdout:", server_logs[0].decode())
            print("Server Stderr:", server_logs[1].decode())
            raise RuntimeError("Server start failed")

        # 2. Place an order and pay half of it
        print("\n--- [Step 2] Placing Order (Persistence Test) ---")
        resp = httpx.post(f"{BASE_URL}{API_PREFIX}/pickups", json={
            "company_name": company,
            "quantity": 4,
            "recipient_name": "Persistence Receiver",
        })
        if resp.status_code != 201:
            print(f"❌ Order Failed: {resp.status_code} {resp.text}")
            raise RuntimeError("Order placement failed")
        order = resp.json()
        print("✅ Order Placed")
        print(order)

        half = f"{float(order['amount_due']) / 2:.2f}"
        resp = httpx.post(f"{BASE_URL}{API_PREFIX}/webhooks/payments", json={
            "transaction_number": f"PERSIST-{uuid.uuid4().hex[:12]}",
            "status": "SUCCESS",
            "amount": half,
            "timestamp": "2026-01-05T09:00:00Z",
            "reference": order["reference_number"],
        })
        if resp.status_code != 200:
            print(f"❌ Payment Failed: {resp.status_code} {resp.text}")
            raise RuntimeError("Payment failed")
        print(f"✅ Payment Reconciled ({resp.json()['payment_status']})")

    finally:
        print("\n--- [Step 3] Stopping Server ---")
        stop_server(proc)

    time.sleep(2)  # Wait for port release

    # 3. Restart Server
    print("\n--- [Step 4] Restarting Server (Verification) ---")
    proc2 = start_server()

    try:
        if not wait_for_server():
            raise RuntimeError("Server restart failed")

        print("\n--- [Step 5] Reading Order (Post-Restart) ---")
        resp = httpx.get(f"{BASE_URL}{API_PREFIX}/pickups/{order['pickup_id']}")
        if resp.status_code != 200:
            print(f"❌ Order Lookup Failed (Persistence Issue?): {resp.status_code} {resp.text}")
            raise RuntimeError("Order lookup failed after restart")
        print(f"✅ Order Persisted ({resp.json()['display_status']})")

        print("\n--- [Step 6] Verifying Ledger ---")
        resp = httpx.get(f"{BASE_URL}{API_PREFIX}/invoices/{order['invoice_id']}/ledger")
        if resp.status_code == 200 and resp.json()["balance"] == half:
            print("✅ Ledger Balance Verified")
            print(resp.json())
        else:
            print(f"❌ Ledger Check Failed: {resp.status_code} {resp.text}")

    finally:
        print("\n--- [Step 7] Stopping Server ---")
        stop_server(proc2)


if __name__ == "__main__":
    run_verification()
