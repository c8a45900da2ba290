"""Write the demo organisation to fixtures/demo_org.json.

The API and `cli.py detect` read this file when RHYTHM_SERIES_URL is not
set. Regenerate it whenever the catalog gains a metric.

Usage:
    uv run python scripts/generate_demo_fixture.py [END_WEEK]
"""

import json
import sys
from datetime import date

from integrations.demo_data import build_demo_dataset
from integrations.providers import DEFAULT_FIXTURE


def main() -> int:
    end_week = date.fromisoformat(sys.argv[1]) if len(sys.argv) > 1 else None
    dataset = build_demo_dataset(end_week=end_week)

    DEFAULT_FIXTURE.parent.mkdir(parents=True, exist_ok=True)
    with open(DEFAULT_FIXTURE, "w") as f:
        json.dump(dataset, f, indent=1)

    teams = sum(len(t) for t in dataset["orgs"].values())
    print(f"Wrote {len(dataset['observations'])} observations for {teams} teams to {DEFAULT_FIXTURE}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
