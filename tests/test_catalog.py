"""
Test Catalog - bundled users and courses, lookups

Run with: pytest tests/test_catalog.py -v
"""

import sys
import os
import json
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from psychebridge.catalog import Catalog
from psychebridge.contracts import UserRole
from psychebridge.errors import NotFoundError, ValidationError


def test_bundled_catalog_contents():
    catalog = Catalog.from_file()

    assert [c.id for c in catalog.list_courses()] == ['cbt-101', 'mi-202', 'crisis-303']
    assert [u.id for u in catalog.list_users()] == ['u-1', 'u-2']
    assert catalog.get_user('u-1').role == UserRole.STAFF
    assert catalog.get_user('u-2').role == UserRole.STUDENT

    course = catalog.get_course('cbt-101')
    assert len(course.modules) == 4
    assert course.patient_bio.startswith("You are Alex")


def test_list_users_by_role():
    catalog = Catalog.from_file()
    students = catalog.list_users(role=UserRole.STUDENT)
    assert [u.id for u in students] == ['u-2']


def test_unknown_ids_raise_not_found():
    catalog = Catalog.from_file()
    with pytest.raises(NotFoundError):
        catalog.get_user('u-404')
    with pytest.raises(NotFoundError):
        catalog.get_course('nope')
    assert not catalog.has_course('nope')


def test_duplicate_ids_rejected(tmp_path):
    path = tmp_path / "catalog.json"
    user = {'id': 'u-1', 'name': 'A', 'role': 'STAFF'}
    path.write_text(json.dumps({'users': [user, user], 'courses': []}))

    with pytest.raises(ValidationError, match="Duplicate user"):
        Catalog.from_file(str(path))


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        Catalog.from_file(str(tmp_path / "missing.json"))
