#!/usr/bin/env python3
"""
Script to check the stored pinyin of every Chinese word against a fresh
transcription, optionally fixing mismatches in place.

Usage:
    python check_pinyin.py [--fix] [--report pinyin-check-report.json]

Automatic fixes can be wrong for characters with several readings, so review
the report before running with --fix.
"""

import os
import sys
import json
import argparse
import datetime
from typing import Any, Dict, List, Optional

# Add the current directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from word_garden import db
from word_garden.phonetics import to_pinyin

DEFAULT_REPORT = "pinyin-check-report.json"


def find_pinyin_issues() -> List[Dict[str, Any]]:
    """Chinese items whose stored pinyin differs from the computed one."""
    session = db.get_session()
    try:
        items = (
            session.query(db.VocabularyItem)
            .filter_by(kind="chinese")
            .order_by(db.VocabularyItem.user_id, db.VocabularyItem.text)
            .all()
        )
    finally:
        session.close()

    issues = []
    for item in items:
        correct = to_pinyin(item.text)
        if correct and correct != item.phonetic:
            issues.append({
                "id": item.id,
                "user_id": item.user_id,
                "text": item.text,
                "current": item.phonetic,
                "correct": correct,
            })
    return issues


def fix_pinyin(issues: List[Dict[str, Any]]) -> int:
    """Write the computed pinyin for every issue. Returns how many rows changed."""
    fixed = 0
    with db.transaction() as session:
        for issue in issues:
            item = session.get(db.VocabularyItem, issue["id"])
            if item is None:
                continue
            item.phonetic = issue["correct"]
            fixed += 1
    return fixed


def check_pinyin(fix: bool = False, report_path: Optional[str] = DEFAULT_REPORT) -> Dict[str, Any]:
    session = db.get_session()
    try:
        total = session.query(db.VocabularyItem).filter_by(kind="chinese").count()
    finally:
        session.close()

    issues = find_pinyin_issues()
    for issue in issues:
        print(f"⚠️  [user {issue['user_id']}] {issue['text']}")
        print(f"   current: {issue['current']}")
        print(f"   suggested: {issue['correct']}")

    fixed = fix_pinyin(issues) if fix and issues else 0

    report = {
        "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
        "total": total,
        "issues": len(issues),
        "fixed": fixed,
        "details": issues,
    }
    if issues and report_path:
        with open(report_path, "w", encoding="utf-8") as f:
            json.dump(report, f, ensure_ascii=False, indent=2)
        print(f"📄 Report saved to {report_path}")
    return report


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Check stored pinyin of Chinese words")
    parser.add_argument("--fix", action="store_true", help="Overwrite mismatched pinyin")
    parser.add_argument("--report", default=DEFAULT_REPORT, help=f"Report path (default: {DEFAULT_REPORT})")
    args = parser.parse_args(argv)

    if not db.is_db_initialized():
        print(f"❌ Database at {db.DB_PATH} is not initialized")
        return 1

    print(f"🔍 Checking pinyin in {db.DB_PATH}")
    report = check_pinyin(fix=args.fix, report_path=args.report)

    print("=" * 50)
    print(f"Total words: {report['total']}")
    print(f"Issues found: {report['issues']}")
    if args.fix:
        print(f"Fixed: {report['fixed']}")
    print("=" * 50)
    if report["issues"] and not args.fix:
        print("💡 Run with --fix to apply the suggested pinyin (check words with several readings first)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
