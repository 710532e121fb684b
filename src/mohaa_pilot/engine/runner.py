"""Run a script on an engine and persist its evidence."""

from __future__ import annotations

import datetime as dt
import logging
from pathlib import Path

from mohaa_pilot.engine.automation import AutomationEngine, CancelToken
from mohaa_pilot.engine.report_generator import (
    ReportGenerator,
    RunRecord,
    generate_run_id,
    save_run_artifacts,
)
from mohaa_pilot.engine.script import Script

logger = logging.getLogger("mohaa_pilot.engine.runner")


def _now() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat(timespec="seconds")


async def run_and_record(
    engine: AutomationEngine,
    script: Script,
    evidence_dir: Path | None = None,
    script_path: Path | None = None,
    cancel_token: CancelToken | None = None,
) -> tuple[RunRecord, Path | None]:
    """Run *script* and, when *evidence_dir* is given, save its report there.

    Returns the run record and the run's evidence directory (None when not saved).
    """
    run_id = generate_run_id()
    logger.info("Run %s starting: %s", run_id, script.name)
    start_time = _now()
    result = await engine.run_script(script, cancel_token)
    record = RunRecord(
        run_id=run_id,
        script_name=script.name,
        script_path=str(script_path) if script_path else None,
        start_time=start_time,
        end_time=_now(),
        result=result,
    )

    run_dir = None
    if evidence_dir is not None:
        try:
            run_dir = save_run_artifacts(record, ReportGenerator().generate(record), evidence_dir)
        except OSError as exc:
            logger.warning("Failed to save run artifacts for %s: %s", run_id, exc)
    return record, run_dir
