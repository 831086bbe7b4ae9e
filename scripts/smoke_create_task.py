"""
Manual smoke test for POST /create-task against a running server.

Usage:
    python scripts/smoke_create_task.py [base_url]
"""

import sys
import time

import requests

BASE_URL = "http://localhost:3000"

NEW_TASK = {
    "id": int(time.time()),
    "title": "Test the Backend API",
    "description": "Make sure the create-task endpoint works.",
    "deadline": "2025-12-31T23:59:00Z",
    "staked_amount": "0.5",
    "userAddress": "0xAbCd1234EfGh5678IjKl9012MnOp3456QrSt7890",
}


def test_create_task_endpoint(base_url=BASE_URL):
    print("Starting test: attempting to create a new task...")
    try:
        resp = requests.post(f"{base_url}/create-task", json=NEW_TASK, timeout=30)
    except requests.RequestException as e:
        print("❌ Test FAILED! Could not connect to the server.")
        print(f"Error: {e}")
        print("Is the backend running? Start it with `flask --app app run --port 3000`")
        return False

    data = resp.json()
    if resp.ok:
        print("✅ Test PASSED! Server responded with success.")
        print(f"Server Response: {data}")
        return True

    print("❌ Test FAILED! Server responded with an error.")
    print(f"Status Code: {resp.status_code}")
    print(f"Error Details: {data}")
    return False


if __name__ == "__main__":
    ok = test_create_task_endpoint(sys.argv[1] if len(sys.argv) > 1 else BASE_URL)
    sys.exit(0 if ok else 1)
