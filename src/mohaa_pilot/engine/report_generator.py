"""mohaa-pilot Report Generator — run artifacts for a finished script run.

Produces a markdown report, the ``run-result.json`` record and, for CI, a
JUnit XML file from a ``TestResult``.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import json
import logging
import random
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any

from mohaa_pilot.engine.script import TestResult
from mohaa_pilot.models import RUN_ID_PREFIX

logger = logging.getLogger("mohaa_pilot.engine.report_generator")


@dataclasses.dataclass
class RunRecord:
    """A script run as stored under ``evidence/<run_id>/``."""

    run_id: str
    script_name: str
    script_path: str | None
    start_time: str
    end_time: str
    result: TestResult

    @property
    def passed(self) -> bool:
        return self.result.passed

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


def generate_run_id() -> str:
    """Generate a unique run ID."""
    ts = dt.datetime.now(dt.timezone.utc).strftime("%Y%m%d-%H%M%S")
    # Short random suffix to avoid collisions within the same second
    suffix = "".join(random.choices("abcdefghijklmnopqrstuvwxyz0123456789", k=4))
    return f"{RUN_ID_PREFIX}{ts}-{suffix}"


class ReportGenerator:
    """Generates markdown reports from run records."""

    def generate(self, record: RunRecord) -> str:
        sections = [
            self._header(record),
            self._summary(record),
            self._step_results_table(record),
            self._failures(record),
        ]
        return "\n\n".join(s for s in sections if s)

    def _header(self, r: RunRecord) -> str:
        verdict = "PASS" if r.passed else "FAIL"
        lines = [
            f"# mohaa-pilot Report: {r.script_name}",
            "",
            f"**Run ID:** {r.run_id}",
        ]
        if r.script_path:
            lines.append(f"**Script:** `{r.script_path}`")
        lines += [f"**Date:** {r.start_time}", f"**Verdict:** {verdict}"]
        return "\n".join(lines)

    def _summary(self, r: RunRecord) -> str:
        steps = r.result.steps
        passed_count = sum(1 for s in steps if s.success)
        return (
            f"## Summary\n"
            f"- Steps: {passed_count}/{len(steps)} passed\n"
            f"- Duration: {r.result.duration_ms / 1000:.1f}s"
        )

    def _step_results_table(self, r: RunRecord) -> str:
        if not r.result.steps:
            return "## Step Results\n\nNo steps executed."
        lines = [
            "## Step Results",
            "| # | Action | Result | Duration | Error |",
            "|---|--------|--------|----------|-------|",
        ]
        for idx, step in enumerate(r.result.steps, 1):
            result_str = "PASS" if step.success else "FAIL"
            error = (step.error or "").replace("|", "\\|").replace("\n", " ")
            if len(error) > 80:
                error = error[:77] + "..."
            lines.append(f"| {idx} | {step.action} | {result_str} | {step.duration_ms:.0f}ms | {error} |")
        return "\n".join(lines)

    def _failures(self, r: RunRecord) -> str:
        failed = [s for s in r.result.steps if not s.success]
        if not failed:
            return ""
        lines = ["## Failures", ""]
        for step in failed:
            lines.append(f"- **{step.action}**: {step.error or 'failed'}")
        return "\n".join(lines)


def save_run_artifacts(record: RunRecord, report: str, evidence_dir: Path) -> Path:
    """Write ``run-result.json`` and ``report.md`` under ``evidence_dir/<run_id>/``.

    Returns the run directory.
    """

    def json_serialize(obj: Any) -> str:
        if isinstance(obj, Path):
            return str(obj)
        raise TypeError(f"Object of type {type(obj)} is not JSON serializable")

    run_dir = evidence_dir / record.run_id
    run_dir.mkdir(parents=True, exist_ok=True)

    result_json_path = run_dir / "run-result.json"
    result_json_path.write_text(json.dumps(record.to_dict(), indent=2, default=json_serialize))
    logger.info("Saved run result JSON to %s", result_json_path)

    report_path = run_dir / "report.md"
    report_path.write_text(report)
    logger.info("Saved markdown report to %s", report_path)
    return run_dir


def load_latest_run(evidence_dir: Path) -> dict[str, Any] | None:
    """Load the most recent run-result.json from the evidence directory."""
    if not evidence_dir.is_dir():
        return None
    run_dirs = sorted(
        (d for d in evidence_dir.iterdir() if d.is_dir() and d.name.startswith(RUN_ID_PREFIX)),
        key=lambda d: d.name,
        reverse=True,
    )
    for run_dir in run_dirs:
        result_path = run_dir / "run-result.json"
        if result_path.is_file():
            try:
                return json.loads(result_path.read_text())
            except (json.JSONDecodeError, OSError) as exc:
                logger.warning("Unreadable run result %s: %s", result_path, exc)
    return None


def write_junit_xml(junit_path: Path, record: RunRecord) -> None:
    """Write a JUnit XML report for CI integration (one testcase per step result)."""
    testsuite = ET.Element("testsuite")
    testsuite.set("name", f"mohaa-pilot-{record.script_name}")
    testsuite.set("tests", str(len(record.result.steps)))
    testsuite.set("time", f"{record.result.duration_ms / 1000:.2f}")

    failures = 0
    for idx, step in enumerate(record.result.steps, 1):
        testcase = ET.SubElement(testsuite, "testcase")
        testcase.set("name", f"{idx:03d}-{step.action}")
        testcase.set("classname", f"mohaa_pilot.{record.run_id}")
        testcase.set("time", f"{step.duration_ms / 1000:.2f}")

        if not step.success:
            failures += 1
            failure = ET.SubElement(testcase, "failure")
            failure.set("message", step.error or "Step failed")
            failure.text = step.error or ""

    testsuite.set("failures", str(failures))

    tree = ET.ElementTree(testsuite)
    ET.indent(tree, space="  ")
    tree.write(str(junit_path), xml_declaration=True, encoding="unicode")
