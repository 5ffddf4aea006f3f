"""
Test report builder - assembly and file output

Run with: pytest tests/test_report_builder.py -v
"""

import sys
import os
import json
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from psychebridge.catalog import Catalog
from psychebridge.contracts import Evaluation, Interaction, SessionStatus, SimulationSession
from psychebridge.core.report_builder import build_report, save_report


def evaluated_session():
    return SimulationSession(
        id='sess-1', student_id='u-2', course_id='cbt-101', start_time=0,
        status=SessionStatus.EVALUATED,
        transcript=[
            Interaction(role='student', content='Hello', timestamp=1000),
            Interaction(role='patient', content='Hi.', timestamp=2000),
        ],
        evaluation=Evaluation(score=75, feedback='Solid', strengths=[], improvements=[],
                              staff_id='u-1', evaluated_at=3000)
    )


def test_build_report_contents():
    catalog = Catalog.from_file()
    report = build_report(evaluated_session(), catalog.get_course('cbt-101'),
                          catalog.get_user('u-2'), briefing='Good alliance.')

    assert report['status'] == 'evaluated'
    assert report['started_at'] == '1970-01-01T00:00:00+00:00'
    assert report['turns'] == 1
    assert [e['speaker'] for e in report['transcript']] == ['Kevin Zhang', 'Patient']
    assert report['transcript'][1]['index'] == 2
    assert report['score'] == 75
    assert report['evaluation']['feedback'] == 'Solid'
    assert report['briefing'] == 'Good alliance.'


def test_build_report_without_evaluation():
    catalog = Catalog.from_file()
    session = SimulationSession(id='sess-2', student_id='u-2', course_id='mi-202', start_time=0)

    report = build_report(session, catalog.get_course('mi-202'), catalog.get_user('u-2'))

    assert report['score'] is None
    assert report['evaluation'] is None
    assert report['transcript'] == []
    assert 'briefing' not in report


def test_save_report(tmp_path):
    catalog = Catalog.from_file()
    report = build_report(evaluated_session(), catalog.get_course('cbt-101'), catalog.get_user('u-2'))

    path = save_report(report, str(tmp_path / 'reports'))

    assert os.path.isabs(path)
    assert os.path.basename(path).startswith('report_sess-1_')
    with open(path, encoding='utf-8') as f:
        assert json.load(f) == report
