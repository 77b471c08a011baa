# src/ddtool/packs_data.py
"""Built-in decision pack documents.

Logic lives in packs.py; this file is pure data. The documents are kept in
the raw shapes they were authored in (``figure1`` uses the canonical object
map, ``figure2`` the older array-of-steps layout with QUESTION/INSTRUCTION
kinds) and go through the normalizer like any fetched pack.
"""

from __future__ import annotations

from typing import Any

# ---------------------------------------------------------------------------
# Figure 1 -- Deficiency classification
# ---------------------------------------------------------------------------

_FIGURE1_PACK: dict[str, Any] = {
    "packId": "figure1",
    "title": "Figure 1 - Deficiency Classification",
    "version": "1.0",
    "entryNodeId": "intro",
    "nodes": {
        "intro": {
            "type": "info",
            "title": "Deficiency classification",
            "body": (
                "Answer each question about the observed deficiency. Every answer is recorded "
                "in the case trace and drives the resulting classification."
            ),
            "next": "q_mission",
            "notes": [
                {
                    "title": "NOTE 1: SUT MISSION DETERMINATION",
                    "body": (
                        "Identify the mission of the System Under Test, the sub-tasks that must work "
                        "for the mission to be accomplished, and the components that make them possible."
                    ),
                }
            ],
            "directives": ["Record the test event id before classifying."],
        },
        "q_mission": {
            "type": "decision",
            "title": "Mission impact",
            "question": "Did the deficiency prevent the System Under Test from accomplishing its primary mission?",
            "choices": {"yes": "q_node_config", "no": "q_significant"},
            "hint": "Consider both the primary mission and any supported missions.",
        },
        "q_node_config": {
            "type": "decision",
            "title": "System configuration",
            "question": (
                "Is the SUT a stand-alone system, or did the casualty disable every node "
                "required by a multi-node or networked SUT?"
            ),
            "choices": {"yes": "omf_result", "no": "degraded_result"},
            "notes": [
                {
                    "title": "NOTE 2: STAND-ALONE, MULTI-NODE, NETWORKED",
                    "body": (
                        "A networked suite that keeps its minimum capability after losing one node is "
                        "degraded, not an Operational Mission Failure."
                    ),
                }
            ],
        },
        "q_significant": {
            "type": "decision",
            "title": "Operational effect",
            "question": (
                "Does the fault have a significant effect on operation (for example, the operator "
                "spends a significant amount of time resetting or working around it)?"
            ),
            "choices": {"yes": "non_omf_blue_sheet", "no": "recommendation_result"},
            "note": "Non-OMF Blue Sheets are only generated when the fault significantly affects operation.",
        },
        "omf_result": {
            "type": "connector",
            "title": "Operational Mission Failure",
            "body": "The deficiency is classified as an Operational Mission Failure. A failure analysis follows.",
            "next": "to_figure2",
            "effects": [
                {"type": "SET", "path": "results.classification", "value": "OMF"},
                {"type": "SET", "path": "results.blue_sheet_required", "value": True},
                {"type": "SET", "path": "results.blue_sheet_status", "value": "REQUIRED"},
                {"type": "ADD_REQUIRED_SECTION", "value": "BLUE_SHEET"},
                {"type": "UNLOCK", "value": {"figure2": True}},
                {"type": "SET_ANALYSIS_STAGE", "value": "FIGURE2_FAILURE_ANALYSIS"},
                {"type": "APPEND_TAGS", "value": ["omf"]},
            ],
        },
        "to_figure2": {
            "type": "handoff",
            "title": "Continue to failure analysis",
            "body": "Figure 2 determines the failure type of the Operational Mission Failure.",
            "handoff": {"targetPackId": "figure2", "reason": "OMF classification requires failure-type analysis"},
        },
        "degraded_result": {
            "type": "outcome",
            "title": "Degraded capability",
            "body": "The SUT retains its mission capability in a degraded state.",
            "effects": [
                {"type": "SET", "path": "results.classification", "value": "DEGRADED"},
                {"type": "APPEND_TAGS", "value": ["degraded"]},
                {"type": "MARK_PACK_COMPLETE"},
            ],
        },
        "non_omf_blue_sheet": {
            "type": "outcome",
            "title": "Non-OMF Blue Sheet",
            "body": "The fault is not an OMF but warrants a Blue Sheet.",
            "effects": [
                {"type": "SET", "path": "results.classification", "value": "NON_OMF"},
                {"type": "SET", "path": "results.blue_sheet_required", "value": True},
                {"type": "SET", "path": "results.blue_sheet_status", "value": "REQUIRED"},
                {"type": "ADD_REQUIRED_SECTION", "value": "BLUE_SHEET"},
                {"type": "MARK_PACK_COMPLETE"},
            ],
        },
        "recommendation_result": {
            "type": "outcome",
            "title": "Recommendation",
            "body": "The observation is recorded as a recommendation.",
            "effects": [
                {"type": "SET", "path": "results.classification", "value": "RECOMMENDATION"},
                {"type": "MARK_PACK_COMPLETE"},
            ],
        },
    },
}

# ---------------------------------------------------------------------------
# Figure 2 -- Failure type analysis (legacy array layout)
# ---------------------------------------------------------------------------

_FIGURE2_PACK: dict[str, Any] = {
    "id": "figure2",
    "name": "Figure 2 - Failure Type Analysis",
    "version": "1.0",
    "start": "F2_START",
    "steps": [
        {
            "id": "F2_START",
            "kind": "INSTRUCTION",
            "title": "Failure analysis",
            "instruction_text": "Determine the cause of the Operational Mission Failure.",
            "goto": "F2_Q1",
            "actions": [{"type": "SET", "path": "results.analysis_method", "value": "FIGURE2"}],
        },
        {
            "id": "F2_Q1",
            "kind": "QUESTION",
            "title": "Hardware",
            "prompt": "Was the failure caused by a hardware fault?",
            "options": [
                {"label": "Yes", "value": "yes", "to": "F2_HW"},
                {"label": "No", "value": "no", "to": "F2_Q2"},
            ],
        },
        {
            "id": "F2_Q2",
            "kind": "QUESTION",
            "title": "Software",
            "prompt": "Was the failure caused by a software fault?",
            "options": [
                {"label": "Yes", "value": "yes", "to": "F2_SW"},
                {"label": "No", "value": "no", "to": "F2_OPS"},
            ],
        },
        {
            "id": "F2_HW",
            "kind": "RESULT",
            "title": "Hardware failure",
            "actions": [
                {"type": "SET_RESULT", "path": "results.failure_type", "value": "HARDWARE"},
                {"type": "MARK_PACK_COMPLETE"},
            ],
        },
        {
            "id": "F2_SW",
            "kind": "RESULT",
            "title": "Software failure",
            "actions": [
                {"type": "SET_RESULT", "path": "results.failure_type", "value": "SOFTWARE"},
                {"type": "MARK_PACK_COMPLETE"},
            ],
        },
        {
            "id": "F2_OPS",
            "kind": "RESULT",
            "title": "Operator or procedural failure",
            "actions": [
                {"type": "SET_RESULT", "path": "results.failure_type", "value": "OPERATOR_OR_PROCEDURE"},
                {"type": "MARK_PACK_COMPLETE"},
            ],
        },
    ],
}

BUILT_IN_PACKS: dict[str, dict[str, Any]] = {
    "figure1": _FIGURE1_PACK,
    "figure2": _FIGURE2_PACK,
}
