#!/usr/bin/env python
"""
Generate a sample sales CSV for trying out the aggregator
"""

import argparse
import csv
from pathlib import Path

DEPARTMENTS = ["Sales", "Marketing", "IT", "HR", "Finance"]


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a sample department sales CSV")
    parser.add_argument("--output", required=True, help="Output file path (.csv)")
    parser.add_argument("--records", type=int, default=1000, help="Number of data rows")
    parser.add_argument("--date", default="2024-01-01", help="Date written on every row")
    args = parser.parse_args()

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)

    with open(output, 'w', encoding='utf-8', newline='') as f:
        writer = csv.writer(f, lineterminator="\n")
        writer.writerow(["Department Name", "Date", "Number of Sales"])
        for i in range(args.records):
            writer.writerow([DEPARTMENTS[i % len(DEPARTMENTS)], args.date, (i % 1000) + 1])

    print(f"Sample with {args.records} records written to: {output}")


if __name__ == "__main__":
    main()
