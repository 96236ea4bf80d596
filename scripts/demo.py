#!/usr/bin/env python3
"""Demo: send one message per channel through the dispatch API.

Start the API first (dev mode, stub adapters unless vendor credentials are set):
    python -m dispatch_api

Usage:
    python scripts/demo.py [--api-url URL]
"""

import argparse
import sys
import time
import uuid

import httpx

REQUESTS = [
    {
        "channel": "sms",
        "recipient": "+1 (555) 123-4567",
        "template": "verification_code",
        "template_context": {"code": "482913", "minutes": 10},
        "body": "Your verification code is 482913",
    },
    {
        "channel": "email",
        "recipient": "alice@Example.com",
        "subject": "Your order has shipped",
        "body": "Order #1001 is on its way.",
    },
    {
        "channel": "whatsapp",
        "recipient": "+447700900123",
        "body": "Your table for two is confirmed for 19:30.",
    },
]


def main() -> None:
    parser = argparse.ArgumentParser(description="Send demo notifications")
    parser.add_argument(
        "--api-url",
        default="http://localhost:8000",
        help="Dispatch API base URL (default: http://localhost:8000)",
    )
    args = parser.parse_args()

    with httpx.Client(base_url=args.api_url, timeout=10.0) as client:
        try:
            resp = client.get("/health")
        except httpx.ConnectError:
            print(f"Cannot connect to {args.api_url}")
            print("Make sure the API is running: python -m dispatch_api")
            sys.exit(1)

        if resp.status_code != 200:
            print(f"API unhealthy: {resp.text}")
            sys.exit(1)

        print(f"API healthy at {args.api_url}\n")

        keys = []
        for request in REQUESTS:
            # Dev mode has no template catalog entries; send plain bodies.
            payload = {k: v for k, v in request.items() if not k.startswith("template")}
            payload["idempotency_key"] = f"demo-{uuid.uuid4()}"
            resp = client.post("/notifications", json=payload)
            body = resp.json()

            if resp.status_code == 202:
                keys.append(payload["idempotency_key"])
                print(f"  {payload['channel']:10s} -> {body['state']:14s} {payload['idempotency_key']}")
            elif resp.status_code == 429:
                keys.append(payload["idempotency_key"])
                print(f"  {payload['channel']:10s} -> rate limited, retry in {resp.headers['Retry-After']}s")
            else:
                print(f"  {payload['channel']:10s} -> ERROR {resp.status_code}: {body}")

        # Resubmitting a key never sends twice.
        if keys:
            resp = client.post("/notifications", json={**REQUESTS[2], "idempotency_key": keys[-1]})
            print(f"\nResubmit {keys[-1]}: duplicate={resp.json().get('duplicate')}")

        time.sleep(1.0)
        print("\nFinal states:")
        for key in keys:
            record = client.get(f"/notifications/{key}").json()
            print(f"  {key}  {record['state']:10s} attempts={record['attempts']}")


if __name__ == "__main__":
    main()
