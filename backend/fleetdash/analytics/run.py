from __future__ import annotations

import argparse
import csv
import json
from pathlib import Path

from fleetdash.analytics.io import load_trips, load_vehicles
from fleetdash.analytics.numbers import parse_timestamp, utcnow
from fleetdash.analytics.report import analyze


def _write_csv(path: Path, rows: list[dict]) -> None:
    if not rows:
        path.write_text("", encoding="utf-8")
        return
    keys = list(rows[0].keys())
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=keys)
        writer.writeheader()
        writer.writerows(rows)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Compute driver, vehicle health and fuel analytics from fleet snapshots")
    parser.add_argument("--vehicles", required=True, help="Path to vehicles JSON")
    parser.add_argument("--trips", required=True, help="Path to trips JSON (list or {vehicle_code: [trips]})")
    parser.add_argument("--now", default=None, help="Reference time (ISO 8601), defaults to current time")
    parser.add_argument("--outdir", default=None, help="Directory where JSON and CSV outputs are written")
    return parser.parse_args(argv)


def run(argv: list[str] | None = None) -> dict:
    args = _parse_args(argv)

    vehicles = load_vehicles(Path(args.vehicles))
    trips = load_trips(Path(args.trips), vehicles)
    now = parse_timestamp(args.now) if args.now else None

    results = analyze(vehicles, trips, now=now or utcnow())

    summary = {
        "dataset": results["dataset"],
        "status": results["status"],
        "health_summary": results["health_summary"],
        "fuel_summary": results["fuel_summary"],
        "top_drivers": [{"name": d["name"], "score": d["score"]} for d in results["drivers"][:3]],
    }

    if args.outdir:
        out_dir = Path(args.outdir)
        out_dir.mkdir(parents=True, exist_ok=True)
        (out_dir / "analytics.json").write_text(json.dumps(results, indent=2), encoding="utf-8")
        _write_csv(out_dir / "driver_ranking.csv", results["drivers"])
        _write_csv(out_dir / "vehicle_health.csv", results["vehicle_health"])
        _write_csv(out_dir / "fuel_daily.csv", results["fuel_daily"])
        summary["output_dir"] = str(out_dir.resolve())

    print(json.dumps(summary, indent=2))
    return summary


def main() -> None:
    run()


if __name__ == "__main__":
    main()
