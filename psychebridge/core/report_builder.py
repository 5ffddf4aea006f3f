"""
Report Builder - Session reports for staff review and download

Responsibilities:
- Assemble a readable report from a session, its course and its student
- Save reports as timestamped JSON files

Design principles:
- Pure assembly (no LLM, no engine access)
- Reports are exports, never read back into state
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from psychebridge.contracts import Course, InteractionRole, SimulationSession, User
from psychebridge.utils.helpers import generate_report_filename

logger = logging.getLogger(__name__)

REPORT_VERSION = "1.0"


def _iso(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).isoformat()


def build_report(session: SimulationSession, course: Course, student: User,
                 briefing: Optional[str] = None) -> dict:
    """
    Build a session report

    Args:
        session: Session snapshot
        course: Course the session simulated
        student: Owning student
        briefing: Optional supervisor briefing text

    Returns:
        dict: JSON-serializable report
    """
    transcript = []
    for index, entry in enumerate(session.transcript, 1):
        speaker = student.name if entry.role == InteractionRole.STUDENT else "Patient"
        transcript.append({
            'index': index,
            'role': entry.role.value,
            'speaker': speaker,
            'content': entry.content,
            'time': _iso(entry.timestamp)
        })

    evaluation = session.evaluation
    report = {
        'report_version': REPORT_VERSION,
        'generated_at': datetime.now(timezone.utc).isoformat(),
        'session_id': session.id,
        'status': session.status.value,
        'started_at': _iso(session.start_time),
        'course': {
            'id': course.id,
            'title': course.title,
            'patient_scenario': course.patient_scenario
        },
        'student': {'id': student.id, 'name': student.name},
        'turns': sum(1 for e in session.transcript if e.role == InteractionRole.STUDENT),
        'transcript': transcript,
        'score': evaluation.score if evaluation else None,
        'evaluation': evaluation.to_json() if evaluation else None
    }
    if briefing is not None:
        report['briefing'] = briefing

    return report


def save_report(report: dict, output_dir: str) -> str:
    """
    Save report to a timestamped JSON file

    Args:
        report: Output of build_report()
        output_dir: Directory for report files (created if missing)

    Returns:
        str: Absolute path to the saved file
    """
    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)

    path = directory / generate_report_filename(report['session_id'])
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(report, f, indent=2, ensure_ascii=False)

    logger.info(f"Report saved to {path}")
    return str(path.absolute())
