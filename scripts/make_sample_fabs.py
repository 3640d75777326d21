#!/usr/bin/env python
from __future__ import annotations

import argparse
import json
import random
from datetime import datetime, timedelta, timezone
from pathlib import Path

STAGES = [
    "fab_created",
    "templating",
    "pre_draft_review",
    "drafting",
    "sales_ct",
    "revision",
    "slab_smith_request",
    "final_programming",
    "cut_list",
]
FAB_TYPES = ["Standard", "Resurfacing", "FAB Only"]
SALES_PEOPLE = [(1, "Dana Ortiz"), (2, "Lee Park")]
ACCOUNTS = ["Harbor Homes", "Summit Builders", "Cedar & Stone"]
STONES = [("Quartz", "Calacatta"), ("Granite", "Absolute Black"), ("Marble", "Carrara")]


def build_fab(fab_id: int, now: datetime, rng: random.Random) -> dict:
    stage = STAGES[fab_id % len(STAGES)]
    created = now - timedelta(days=rng.randint(0, 45), hours=rng.randint(0, 8))
    sales_id, sales_name = rng.choice(SALES_PEOPLE)
    stone_type, stone_color = rng.choice(STONES)
    job_number = f"J-{1000 + fab_id}"
    scheduled = rng.random() < 0.6
    return {
        "id": fab_id,
        "job_id": 500 + fab_id,
        "fab_type": rng.choice(FAB_TYPES),
        "account_name": rng.choice(ACCOUNTS),
        "sales_person_id": sales_id,
        "sales_person_name": sales_name,
        "stone_type_name": stone_type,
        "stone_color_name": stone_color,
        "stone_thickness_value": rng.choice(["2cm", "3cm"]),
        "edge_name": rng.choice(["Eased", "Bullnose", "Ogee"]),
        "total_sqft": round(rng.uniform(20, 120), 1),
        "no_of_pieces": rng.randint(1, 8),
        "current_stage": stage,
        "on_hold": rng.random() < 0.1,
        "created_at": created.strftime("%Y-%m-%dT%H:%M:%S"),
        "updated_at": created.strftime("%Y-%m-%dT%H:%M:%S"),
        "templating_schedule_start_date": (
            (created + timedelta(days=3)).strftime("%Y-%m-%dT09:00:00") if scheduled else None
        ),
        "technician_name": "Sam Reyes" if scheduled else None,
        "template_needed": True,
        "slab_smith_used": stage in {"slab_smith_request", "final_programming"},
        "revenue": round(rng.uniform(2000, 15000), 2),
        "gp": round(rng.uniform(0.2, 0.45), 2),
        "job_details": {"name": f"{rng.choice(ACCOUNTS)} Kitchen {fab_id}", "job_number": job_number},
        "fab_notes": [],
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a seed file for the in-memory fab gateway")
    parser.add_argument("--output", required=True, help="Output path (.json)")
    parser.add_argument("--count", type=int, default=40, help="Number of fabs to generate")
    parser.add_argument("--seed", type=int, default=7, help="Random seed")
    parser.add_argument("--drafter-id", type=int, default=11, help="Drafter assigned to drafting fabs")
    args = parser.parse_args()

    rng = random.Random(args.seed)
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    fabs = [build_fab(fab_id, now, rng) for fab_id in range(1, args.count + 1)]
    assignments = [
        {"fab_id": fab["id"], "kind": "drafting", "drafter_id": args.drafter_id}
        for fab in fabs
        if fab["current_stage"] in {"drafting", "revision"}
    ]

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps({"fabs": fabs, "assignments": assignments}, indent=2), encoding="utf-8")
    print(f"Sample fabs written: {output} ({len(fabs)} fabs, {len(assignments)} assignments)")


if __name__ == "__main__":
    main()
