"""
Test Progress Tracker - course completion bookkeeping

Run with: pytest tests/test_progress_tracker.py -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from psychebridge.catalog import Catalog
from psychebridge.contracts import StudentProgress
from psychebridge.core.progress_tracker import ProgressTracker
from psychebridge.errors import NotFoundError


@pytest.fixture
def tracker():
    return ProgressTracker(Catalog.from_file())


def test_get_or_create_creates_empty_record(tracker):
    progress_map = {}
    progress = tracker.get_or_create(progress_map, 'u-2')

    assert progress.student_id == 'u-2'
    assert progress.completed_course_ids == set()
    assert progress.active_session_id is None
    assert progress_map['u-2'] is progress

    # Second call returns the same record
    assert tracker.get_or_create(progress_map, 'u-2') is progress


def test_mark_completed_is_idempotent(tracker):
    progress = StudentProgress(student_id='u-2')

    tracker.mark_completed(progress, 'cbt-101')
    tracker.mark_completed(progress, 'cbt-101')

    assert progress.completed_course_ids == {'cbt-101'}


def test_mark_completed_accumulates(tracker):
    progress = StudentProgress(student_id='u-2')
    tracker.mark_completed(progress, 'cbt-101')
    tracker.mark_completed(progress, 'mi-202')

    assert progress.has_completed('cbt-101')
    assert progress.has_completed('mi-202')
    assert not progress.has_completed('crisis-303')


def test_mark_completed_unknown_course(tracker):
    progress = StudentProgress(student_id='u-2')

    with pytest.raises(NotFoundError):
        tracker.mark_completed(progress, 'astro-999')

    assert progress.completed_course_ids == set()
