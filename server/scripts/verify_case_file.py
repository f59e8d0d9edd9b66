"""
Verify an exported conflict case file.
Run with: python scripts/verify_case_file.py path/to/case.json

Checks the file against the case schema, recomputes every document's version
hash and confirms the audit log is in timestamp order. Exits 1 on any problem.
"""
import argparse
import logging
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.config import configure_logging
from app.conflict.services.audit_trail import AuditTrail
from app.conflict.services.case_repository import deserialize_case
from app.conflict.services.document_ledger import verify_case_integrity
from app.conflict.services.errors import CaseValidationError

logger = logging.getLogger("verify_case_file")


def verify_file(path: str) -> list[str]:
    """Return the problems found in the case file at ``path``."""
    try:
        with open(path, "rb") as fh:
            raw = fh.read()
    except OSError as exc:
        logger.warning("Could not read %s: %s", path, exc)
        return [f"cannot read file: {exc.strerror or exc}"]

    try:
        case = deserialize_case(raw)
    except CaseValidationError as exc:
        return [str(exc), *exc.problems]

    problems = []
    for mismatch in verify_case_integrity(case):
        problems.append(
            f"{mismatch.document_type} document {mismatch.document_id}: "
            f"stored hash {mismatch.stored_hash} != computed {mismatch.computed_hash}"
        )
    if not AuditTrail.is_ordered(case):
        problems.append("audit log entries are not in timestamp order")

    logger.info(
        "Checked case %s: %d document(s), %d audit entries",
        case.case_number,
        len(case.documents),
        len(case.audit_log),
    )
    return problems


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Verify an exported conflict case file")
    parser.add_argument("paths", nargs="+", help="Case JSON file(s) to verify")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)

    failed = False
    for path in args.paths:
        problems = verify_file(path)
        if problems:
            failed = True
            print(f"FAIL {path}")
            for problem in problems:
                print(f"  - {problem}")
        else:
            print(f"OK   {path}")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
