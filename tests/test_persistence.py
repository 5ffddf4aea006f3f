"""
Test persistence - save/load round trip, schema version tag, file store

Run with: pytest tests/test_persistence.py -v
"""

import sys
import os
import json
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from psychebridge.contracts import (
    Evaluation,
    Interaction,
    SessionStatus,
    SimulationSession,
    StudentProgress,
)
from psychebridge.errors import PersistenceError
from psychebridge.persistence import (
    PROGRESS_KEY,
    SESSIONS_KEY,
    JSONFileStore,
    MemoryStore,
    StatePersistence,
)


def sample_state():
    progress = [
        StudentProgress(student_id='u-2', completed_course_ids={'cbt-101', 'mi-202'},
                        active_session_id='sess-2'),
    ]
    sessions = [
        SimulationSession(
            id='sess-2', student_id='u-2', course_id='mi-202', start_time=2000,
            transcript=[Interaction(role='student', content='Hi', timestamp=2100)]
        ),
        SimulationSession(
            id='sess-1', student_id='u-2', course_id='cbt-101', start_time=1000,
            status=SessionStatus.EVALUATED,
            transcript=[
                Interaction(role='student', content='Hello, how are you feeling?', timestamp=1100),
                Interaction(role='patient', content='Not great.', timestamp=1200),
            ],
            evaluation=Evaluation(score=90, feedback='Good rapport', strengths=['listening'],
                                  improvements=['pacing'], staff_id='u-1', evaluated_at=1300)
        ),
    ]
    return progress, sessions


@pytest.mark.parametrize("store_kind", ["memory", "file"])
def test_save_load_roundtrip(store_kind, tmp_path):
    store = MemoryStore() if store_kind == "memory" else JSONFileStore(str(tmp_path / "state"))
    persistence = StatePersistence(store)
    progress, sessions = sample_state()

    persistence.save(progress, sessions)
    state = persistence.load()

    assert state.progress == progress
    assert [s.id for s in state.sessions] == ['sess-2', 'sess-1']
    assert state.sessions == sessions


def test_load_empty_store_returns_none(tmp_path):
    assert StatePersistence(MemoryStore()).load() is None
    assert StatePersistence(JSONFileStore(str(tmp_path))).load() is None


def test_blobs_carry_schema_version():
    store = MemoryStore()
    StatePersistence(store).save(*sample_state())

    assert store.get(PROGRESS_KEY)['schema_version'] == 1
    assert store.get(SESSIONS_KEY)['schema_version'] == 1
    assert len(store.get(SESSIONS_KEY)['data']) == 2


def test_schema_version_mismatch_raises():
    store = MemoryStore()
    store.set(PROGRESS_KEY, {'schema_version': 99, 'data': []})

    with pytest.raises(PersistenceError, match="schema_version 99"):
        StatePersistence(store).load()


def test_untagged_blob_raises():
    # Pre-versioning format: bare list
    store = MemoryStore()
    store.set(SESSIONS_KEY, [])

    with pytest.raises(PersistenceError, match="no schema_version"):
        StatePersistence(store).load()


def test_invalid_record_raises():
    store = MemoryStore()
    store.set(SESSIONS_KEY, {'schema_version': 1, 'data': [{'id': 'broken'}]})

    with pytest.raises(PersistenceError, match="validation"):
        StatePersistence(store).load()


def test_corrupt_file_raises(tmp_path):
    store = JSONFileStore(str(tmp_path))
    (tmp_path / f"{PROGRESS_KEY}.json").write_text("{not json")

    with pytest.raises(PersistenceError, match="Corrupt"):
        StatePersistence(store).load()


def test_undecodable_file_raises(tmp_path):
    store = JSONFileStore(str(tmp_path))
    (tmp_path / f"{SESSIONS_KEY}.json").write_bytes(b'\xff\xfe{"x"')

    with pytest.raises(PersistenceError, match="Corrupt"):
        StatePersistence(store).load()


def session_record(**overrides):
    record = {
        'id': 'sess-1', 'student_id': 'u-2', 'course_id': 'cbt-101',
        'start_time': 1000, 'status': 'active', 'transcript': [], 'evaluation': None
    }
    record.update(overrides)
    return record


@pytest.mark.parametrize("course_ids", ["cbt-101", 5, ['cbt-101', 7]])
def test_malformed_progress_course_ids_rejected(course_ids):
    store = MemoryStore()
    store.set(PROGRESS_KEY, {
        'schema_version': 1,
        'data': [{'student_id': 'u-2', 'completed_course_ids': course_ids}]
    })

    with pytest.raises(PersistenceError, match="validation"):
        StatePersistence(store).load()


@pytest.mark.parametrize("overrides", [
    {'transcript': 7},
    {'transcript': ['Hello']},
    {'transcript': [{'role': 'student', 'content': 42, 'timestamp': 1}]},
    {'transcript': [{'role': 'student', 'content': 'Hi', 'timestamp': None}]},
    {'start_time': '1000'},
    {'status': 'evaluated', 'evaluation': {
        'score': 90, 'feedback': 'ok', 'staff_id': 'u-1', 'evaluated_at': 'yesterday'
    }},
])
def test_malformed_session_fields_rejected(overrides):
    store = MemoryStore()
    store.set(SESSIONS_KEY, {'schema_version': 1, 'data': [session_record(**overrides)]})

    with pytest.raises(PersistenceError, match="validation"):
        StatePersistence(store).load()


def test_missing_optional_lists_load_empty():
    store = MemoryStore()
    record = session_record()
    del record['transcript']
    store.set(SESSIONS_KEY, {'schema_version': 1, 'data': [record]})
    store.set(PROGRESS_KEY, {'schema_version': 1, 'data': [{'student_id': 'u-2'}]})

    state = StatePersistence(store).load()

    assert state.sessions[0].transcript == []
    assert state.progress[0].completed_course_ids == set()


def test_file_store_overwrites_full_state(tmp_path):
    store = JSONFileStore(str(tmp_path))
    persistence = StatePersistence(store)
    progress, sessions = sample_state()

    persistence.save(progress, sessions)
    persistence.save(progress, sessions[:1])

    with open(tmp_path / f"{SESSIONS_KEY}.json") as f:
        blob = json.load(f)
    assert [s['id'] for s in blob['data']] == ['sess-2']

    # No temp files left behind
    assert sorted(p.name for p in tmp_path.iterdir()) == [
        f"{PROGRESS_KEY}.json", f"{SESSIONS_KEY}.json"
    ]


def test_memory_store_does_not_alias():
    store = MemoryStore()
    value = {'a': [1]}
    store.set('k', value)
    value['a'].append(2)

    assert store.get('k') == {'a': [1]}
