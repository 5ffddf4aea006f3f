"""
Catalog - Fixed reference data (users and courses)

Responsibilities:
- Load users and courses from the catalog JSON file
- Lookup by id with NotFoundError on miss
- Preserve catalog order for listings

Design principles:
- Loaded once, immutable afterwards
- No runtime creation or deletion of users/courses
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from psychebridge.contracts import Course, User, UserRole
from psychebridge.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent / "data" / "catalog.json"


class Catalog:
    """Read-only registry of users and courses"""

    def __init__(self, users: List[User], courses: List[Course], version: str = "unknown"):
        """
        Args:
            users: Catalog users, in display order
            courses: Catalog courses, in display order
            version: Catalog data version (informational)

        Raises:
            ValidationError: If ids are duplicated
        """
        self._users: Dict[str, User] = {}
        self._courses: Dict[str, Course] = {}
        self.version = version

        for user in users:
            if user.id in self._users:
                raise ValidationError(f"Duplicate user id in catalog: {user.id}")
            self._users[user.id] = user

        for course in courses:
            if course.id in self._courses:
                raise ValidationError(f"Duplicate course id in catalog: {course.id}")
            self._courses[course.id] = course

        logger.info(
            f"Catalog loaded (version {version}): "
            f"{len(self._users)} users, {len(self._courses)} courses"
        )

    @classmethod
    def from_file(cls, catalog_path: Optional[str] = None) -> "Catalog":
        """
        Load catalog from JSON file

        Args:
            catalog_path: Path to catalog JSON (defaults to the bundled catalog)

        Returns:
            Catalog

        Raises:
            FileNotFoundError: If the file does not exist
            ValidationError: If a record is malformed
        """
        path = Path(catalog_path) if catalog_path else DEFAULT_CATALOG_PATH
        if not path.exists():
            raise FileNotFoundError(f"Catalog not found: {path}")

        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        try:
            users = [User.from_json(item) for item in data.get('users', [])]
            courses = [Course.from_json(item) for item in data.get('courses', [])]
        except ValueError as e:
            raise ValidationError(f"Malformed catalog {path}: {e}") from e

        return cls(users, courses, version=data.get('version', 'unknown'))

    # ========================
    # Users
    # ========================

    def list_users(self, role: Optional[UserRole] = None) -> List[User]:
        users = list(self._users.values())
        if role is not None:
            users = [u for u in users if u.role == UserRole(role)]
        return users

    def get_user(self, user_id: str) -> User:
        """
        Raises:
            NotFoundError: If user_id is not in the catalog
        """
        user = self._users.get(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    # ========================
    # Courses
    # ========================

    def list_courses(self) -> List[Course]:
        return list(self._courses.values())

    def get_course(self, course_id: str) -> Course:
        """
        Raises:
            NotFoundError: If course_id is not in the catalog
        """
        course = self._courses.get(course_id)
        if course is None:
            raise NotFoundError(f"Course {course_id} not found")
        return course

    def has_course(self, course_id: str) -> bool:
        return course_id in self._courses
