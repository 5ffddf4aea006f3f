"""
Progress Tracker - Course completion bookkeeping

Responsibilities:
- Create a progress record for a student on first use
- Mark a course completed (set semantics, idempotent)
- Validate course ids against the catalog

NOT responsible for:
- Persistence (SessionEngine saves after every mutation)
- Session lifecycle
"""

import logging
from typing import Dict

from psychebridge.catalog import Catalog
from psychebridge.contracts import StudentProgress

logger = logging.getLogger(__name__)


class ProgressTracker:
    """Tracks which courses each student has completed"""

    def __init__(self, catalog: Catalog):
        """
        Args:
            catalog: Course/user catalog used for validation
        """
        self.catalog = catalog

    def get_or_create(self, progress_map: Dict[str, StudentProgress],
                      student_id: str) -> StudentProgress:
        """
        Return the student's progress record, creating an empty one if absent

        Args:
            progress_map: Progress records keyed by student id (mutated)
            student_id: Student identifier

        Returns:
            StudentProgress stored in progress_map
        """
        progress = progress_map.get(student_id)
        if progress is None:
            progress = StudentProgress(student_id=student_id)
            progress_map[student_id] = progress
            logger.info(f"Created progress record for {student_id}")
        return progress

    def mark_completed(self, progress: StudentProgress, course_id: str) -> StudentProgress:
        """
        Add course_id to the completed set

        Adding an id that is already present is a no-op.

        Args:
            progress: Record to update (mutated in place)
            course_id: Course the student acknowledged

        Returns:
            The updated record

        Raises:
            NotFoundError: If course_id is not in the catalog
        """
        self.catalog.get_course(course_id)

        if progress.has_completed(course_id):
            logger.debug(f"{progress.student_id} already completed {course_id}")
            return progress

        progress.completed_course_ids.add(course_id)
        logger.info(f"{progress.student_id} completed {course_id} (simulation unlocked)")
        return progress
