#!/usr/bin/env python3
"""
Multi-Source Interaction Consensus Engine
Batch Checker - run every medication list in a sheet through the engine

Usage:
    python check_combinations.py /path/to/regimens.xlsx [--output report.json]
    python check_combinations.py regimens.csv --column medications --separator ";"

Each row holds one regimen: either a single column of separated names or
several columns (med_1, med_2, ...) with one name each.
"""
import sys
import json
import asyncio
import logging
import argparse
from pathlib import Path
from datetime import datetime
from typing import Dict, List, Optional

import pandas as pd

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.interaction_service import InteractionEngine
from src.core.combination import summarize
from src.core.models import CombinationResult

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def read_regimens(input_path: str, column: Optional[str] = None, separator: str = ",") -> List[List[str]]:
    """Medication lists from a CSV or Excel sheet, one per row"""
    path = Path(input_path)
    if path.suffix.lower() in (".xlsx", ".xls"):
        df = pd.read_excel(path, dtype=str)
    else:
        df = pd.read_csv(path, dtype=str)
    df = df.fillna("")

    regimens = []
    for _, row in df.iterrows():
        if column:
            names = [n.strip() for n in str(row[column]).split(separator)]
        else:
            names = [str(v).strip() for v in row.values]
        names = [n for n in names if n]
        if names:
            regimens.append(names)

    logger.info(f"Read {len(regimens)} regimens from {path}")
    return regimens


def result_to_dict(result: CombinationResult) -> Dict:
    return {
        "type": result.combination_type.value,
        "label": result.label,
        "medications": list(result.medications),
        "severity": result.severity.value,
        "confidence_score": result.confidence_score,
        "ai_validated": result.ai_validated,
        "description": result.description,
        "sources": [
            {
                "name": s.provider_name,
                "severity": s.severity.value,
                "description": s.description,
                "confidence": s.confidence,
            }
            for s in result.sources
        ],
    }


async def check_regimens(regimens: List[List[str]], engine: InteractionEngine) -> List[Dict]:
    report = []
    try:
        for index, medications in enumerate(regimens, start=1):
            results = await engine.check_all_combinations(medications)
            summary = summarize(results)
            logger.info(
                f"Regimen {index}: {' + '.join(medications)} -> "
                f"worst {summary['worst_severity']} ({summary['total']} results)"
            )
            report.append({
                "regimen": medications,
                "summary": summary,
                "results": [result_to_dict(r) for r in results],
            })
    finally:
        await engine.aclose()
    return report


def run_batch(input_path: str, output_path: Optional[str] = None,
              column: Optional[str] = None, separator: str = ",") -> List[Dict]:
    regimens = read_regimens(input_path, column, separator)
    report = asyncio.run(check_regimens(regimens, InteractionEngine()))

    if output_path is None:
        output_path = str(Path(input_path).parent / "interaction_report.json")
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump({
            "generated_at": datetime.now().isoformat(),
            "regimens": report,
        }, f, ensure_ascii=False, indent=2)

    severe = sum(1 for r in report if r["summary"]["requires_action"])
    logger.info(f"Wrote report for {len(report)} regimens ({severe} with severe findings) to: {output_path}")
    return report


def main():
    parser = argparse.ArgumentParser(
        description="Check every medication combination in a sheet of regimens"
    )
    parser.add_argument(
        "input",
        help="Path to a CSV or Excel file, one regimen per row"
    )
    parser.add_argument(
        "--output", "-o",
        help="Output path for the JSON report"
    )
    parser.add_argument(
        "--column", "-c",
        help="Column holding separated medication names (default: use every column)"
    )
    parser.add_argument(
        "--separator", "-s",
        default=",",
        help="Separator inside --column values"
    )

    args = parser.parse_args()
    run_batch(args.input, args.output, args.column, args.separator)


if __name__ == "__main__":
    main()
