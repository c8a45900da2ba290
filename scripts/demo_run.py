"""Start a detection run on the local API and poll until it completes."""

import json
import sys
import time
import urllib.error
import urllib.parse
import urllib.request


BASE_URL = "http://127.0.0.1:8000"
ORG_ID = "acme"
TIMEOUT_SECONDS = 60
POLL_INTERVAL_SECONDS = 1.0


def _request(method: str, path: str, payload: dict | None = None) -> dict | list:
    url = f"{BASE_URL}{path}"
    data = None
    headers = {"Content-Type": "application/json"}

    if payload is not None:
        data = json.dumps(payload).encode("utf-8")

    req = urllib.request.Request(url=url, method=method, data=data, headers=headers)
    with urllib.request.urlopen(req, timeout=10) as resp:
        body = resp.read().decode("utf-8")
        return json.loads(body) if body else {}


def main() -> int:
    try:
        print(f"Starting a run for org '{ORG_ID}' via /runs ...")
        created = _request("POST", "/runs", {"org_id": ORG_ID})
    except urllib.error.URLError as exc:
        print(f"Failed to reach API at {BASE_URL}: {exc}", file=sys.stderr)
        print("Start it first with: uv run uvicorn main:app --reload", file=sys.stderr)
        return 1

    run_id = created.get("run_id")
    if not run_id:
        print(f"Unexpected /runs response: {created}", file=sys.stderr)
        return 1

    print(f"Run created: {run_id}")
    print("Polling for completion ...")

    deadline = time.time() + TIMEOUT_SECONDS
    while time.time() < deadline:
        record = _request("GET", f"/runs/{run_id}")
        status = record.get("status")
        print(f"  status={status}")

        if status == "failed":
            print(json.dumps(record, indent=2))
            return 2

        if status == "complete":
            print(f"\nOutcome counts: {json.dumps(record['counts'], indent=2)}")
            query = urllib.parse.urlencode({"org_id": ORG_ID})
            for signal in _request("GET", f"/signals?{query}"):
                if signal["id"] in record["signal_ids"]:
                    print(
                        f"  {signal['severity']:<8} {signal['team_id']:<10} "
                        f"{signal['signal_type']:<20} confidence={signal['confidence']:.2f}"
                    )
            return 0

        time.sleep(POLL_INTERVAL_SECONDS)

    print(f"Timed out after {TIMEOUT_SECONDS}s waiting for completion.", file=sys.stderr)
    return 3


if __name__ == "__main__":
    raise SystemExit(main())
