"""Initial case-state blob for a new deficiency case.

Pack effects write into this shape (``results.*``, ``reporting.required_sections``,
``analysis_state.unlocked``, ``tags``), so it is the default initial state of
sessions created through ``CaseSession``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

SCHEMA_VERSION = "1.0"
DEFAULT_REQUIRED_SECTIONS = ("DEFICIENCY_DESCRIPTION", "RESULTS_PARAGRAPH")


def new_case_state(now: datetime | None = None) -> dict[str, Any]:
    """Build a fresh case blob stamped with *now* (default: current UTC time)."""
    now = now or datetime.now(UTC)
    iso = now.isoformat()
    return {
        "schema_version": SCHEMA_VERSION,
        "case_id": f"CASE-{now.strftime('%Y%m%dT%H%M%S%fZ')}",
        "case_status": "IN_PROGRESS",
        "timestamps": {"created_utc": iso, "last_modified_utc": iso},
        "test_context": {
            "test_date": now.date().isoformat(),
            "test_location": "TBD",
            "test_item": "SUT",
            "test_type": "OT",
            "event_id": "",
        },
        "deficiency_observation": {
            "title": "Observed Issue",
            "statement": "Describe the observed behavior and context.",
            "conditions": "",
            "steps_to_reproduce": [],
            "evidence_references": [],
            "requirement_references": [],
        },
        "analysis_state": {
            "stage": "FIGURE1_CLASSIFICATION",
            "unlocked": {"figure1": True, "figure2": False},
        },
        "results": {
            "classification": "UNDETERMINED",
            "failure_type": "UNDETERMINED",
            "blue_sheet_required": False,
            "blue_sheet_status": "NOT_APPLICABLE",
            "analysis_method": "UNDETERMINED",
        },
        "reporting": {
            "required_sections": list(DEFAULT_REQUIRED_SECTIONS),
            "generated_artifacts": [],
            "template_versions": {},
        },
        "tags": [],
        "attachments": [],
    }
