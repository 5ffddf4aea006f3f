"""
Flask Web Application for the PsycheBridge clinical training portal

JSON API over the session engine. Students browse courses, unlock
simulations and talk to the simulated patient; staff review completed
transcripts and submit evaluations.
"""

import logging
import os

from flask import Blueprint, Flask, current_app, jsonify, request, send_from_directory
from werkzeug.exceptions import HTTPException

from psychebridge.catalog import Catalog
from psychebridge.config import Config
from psychebridge.contracts import Evaluation, SessionStatus
from psychebridge.core.collaborator import LLMCollaborator
from psychebridge.core.report_builder import build_report, save_report
from psychebridge.core.session_engine import SessionEngine
from psychebridge.errors import (
    InvalidTransitionError,
    NotFoundError,
    PreconditionError,
    PsycheBridgeError,
    ValidationError,
)
from psychebridge.persistence import JSONFileStore, MemoryStore, StatePersistence

logger = logging.getLogger(__name__)

ENGINE_KEY = 'psychebridge_engine'

ERROR_STATUS = {
    NotFoundError: 404,
    PreconditionError: 409,
    InvalidTransitionError: 409,
    ValidationError: 400,
}

api = Blueprint('api', __name__)


def _engine() -> SessionEngine:
    return current_app.extensions[ENGINE_KEY]


def _payload() -> dict:
    return request.get_json(silent=True) or {}


@api.errorhandler(PsycheBridgeError)
def handle_domain_error(e):
    status = 500
    for error_type, code in ERROR_STATUS.items():
        if isinstance(e, error_type):
            status = code
            break

    logger.info(f"{request.method} {request.path} rejected: {type(e).__name__}: {e}")
    return jsonify({
        'success': False,
        'error': str(e),
        'error_type': type(e).__name__
    }), status


@api.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return e

    logger.exception(f"Error handling {request.method} {request.path}: {e}")
    return jsonify({
        'success': False,
        'error': str(e),
        'error_type': type(e).__name__
    }), 500


@api.route('/')
def index():
    """Service info"""
    engine = _engine()
    return jsonify({
        'success': True,
        'service': 'psychebridge',
        'catalog_version': engine.catalog.version
    })


# ========================
# Role selection & catalog
# ========================

@api.route('/api/users')
def list_users():
    """Fixed user catalog for role selection"""
    users = _engine().catalog.list_users()
    return jsonify({'success': True, 'users': [u.to_json() for u in users]})


@api.route('/api/login', methods=['POST'])
def login():
    """Select a user (no authentication, role selection only)"""
    user_id = _payload().get('user_id')
    if not user_id:
        raise ValidationError("user_id is required")

    engine = _engine()
    user = engine.catalog.get_user(user_id)
    logger.info(f"User selected: {user.id} ({user.role.value})")

    return jsonify({
        'success': True,
        'user': user.to_json(),
        'dashboard': engine.dashboard(user.id).to_json()
    })


@api.route('/api/courses')
def list_courses():
    """Course catalog; with ?student_id= each course carries its unlock state"""
    engine = _engine()
    student_id = request.args.get('student_id')
    completed = set()
    if student_id:
        completed = engine.get_progress(student_id).completed_course_ids

    courses = []
    for course in engine.catalog.list_courses():
        item = course.to_json()
        if student_id:
            item['completed'] = course.id in completed
        courses.append(item)

    return jsonify({'success': True, 'courses': courses})


@api.route('/api/courses/<course_id>')
def get_course(course_id):
    """Course detail with its module list"""
    course = _engine().catalog.get_course(course_id)
    return jsonify({'success': True, 'course': course.to_json()})


# ========================
# Progress
# ========================

@api.route('/api/progress/<student_id>')
def get_progress(student_id):
    progress = _engine().get_progress(student_id)
    return jsonify({'success': True, 'progress': progress.to_json()})


@api.route('/api/progress/<student_id>/complete', methods=['POST'])
def complete_course(student_id):
    """Acknowledge all modules of a course (unlocks its simulation)"""
    course_id = _payload().get('course_id')
    if not course_id:
        raise ValidationError("course_id is required")

    progress = _engine().mark_completed(student_id, course_id)
    return jsonify({
        'success': True,
        'progress': progress.to_json(),
        'message': 'Course completed! Simulation unlocked.'
    })


# ========================
# Sessions
# ========================

@api.route('/api/sessions', methods=['POST'])
def start_session():
    data = _payload()
    student_id = data.get('student_id')
    course_id = data.get('course_id')
    if not student_id or not course_id:
        raise ValidationError("student_id and course_id are required")

    session = _engine().start_session(student_id, course_id)
    return jsonify({'success': True, 'session': session.to_json()}), 201


@api.route('/api/sessions')
def list_sessions():
    """Sessions, most recent first (?student_id=, ?status=)"""
    status = request.args.get('status')
    if status:
        try:
            status = SessionStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown status '{status}'") from None

    sessions = _engine().list_sessions(
        student_id=request.args.get('student_id'),
        status=status or None
    )
    return jsonify({'success': True, 'sessions': [s.to_json() for s in sessions]})


@api.route('/api/sessions/<session_id>')
def get_session(session_id):
    engine = _engine()
    session = engine.get_session(session_id)
    return jsonify({
        'success': True,
        'session': session.to_json(),
        'reply_pending': engine.is_reply_pending(session_id)
    })


@api.route('/api/sessions/<session_id>/turns', methods=['POST'])
def submit_turn(session_id):
    """Send a student message and wait for the patient's reply"""
    message = _payload().get('message', '')
    result = _engine().submit_turn(session_id, message)
    return jsonify({'success': True, **result.to_json()})


@api.route('/api/sessions/<session_id>/end', methods=['POST'])
def end_session(session_id):
    session = _engine().end_session(session_id)
    return jsonify({'success': True, 'session': session.to_json()})


@api.route('/api/sessions/<session_id>/evaluation', methods=['POST'])
def evaluate_session(session_id):
    """Staff evaluation form: staff_id, score, feedback, strengths, improvements"""
    data = _payload()
    evaluation = Evaluation.from_form(data, staff_id=data.get('staff_id'))
    session = _engine().evaluate(session_id, evaluation)
    return jsonify({
        'success': True,
        'session': session.to_json(),
        'message': 'Evaluation submitted successfully.'
    })


@api.route('/api/sessions/<session_id>/briefing')
def session_briefing(session_id):
    """AI supervisor briefing for a finished session"""
    reply = _engine().generate_briefing(session_id)
    return jsonify({
        'success': True,
        'briefing': reply.text,
        'briefing_failed': reply.failed
    })


@api.route('/api/sessions/<session_id>/report')
def session_report(session_id):
    """Session report; ?save=1 also writes it to the report directory"""
    engine = _engine()
    session = engine.get_session(session_id)
    course = engine.catalog.get_course(session.course_id)
    student = engine.catalog.get_user(session.student_id)
    report = build_report(session, course, student)

    response = {'success': True, 'report': report}
    if request.args.get('save') in ('1', 'true', 'yes'):
        path = save_report(report, current_app.config['REPORT_DIR'])
        response['filename'] = os.path.basename(path)

    return jsonify(response)


@api.route('/api/download/<filename>')
def download_report(filename):
    """Download a saved report"""
    report_dir = os.path.abspath(current_app.config['REPORT_DIR'])
    if not os.path.exists(os.path.join(report_dir, os.path.basename(filename))):
        raise NotFoundError(f"Report {filename} not found")

    return send_from_directory(report_dir, filename, as_attachment=True, download_name=filename)


# ========================
# Dashboards
# ========================

@api.route('/api/dashboard/<user_id>')
def dashboard(user_id):
    summary = _engine().dashboard(user_id)
    return jsonify({'success': True, 'dashboard': summary.to_json()})


@api.route('/api/reviews')
def review_queue():
    """Staff review queue: completed sessions awaiting evaluation"""
    engine = _engine()
    items = []
    for session in engine.pending_reviews():
        student = engine.catalog.get_user(session.student_id)
        course = engine.catalog.get_course(session.course_id)
        items.append({
            'session': session.to_json(),
            'student_name': student.name,
            'course_title': course.title
        })

    return jsonify({'success': True, 'reviews': items})


# ========================
# Application setup
# ========================

def create_app(engine: SessionEngine, config_overrides: dict = None) -> Flask:
    """
    Build the Flask app around an engine

    Args:
        engine: Session engine (owns all state)
        config_overrides: Values applied on top of Config

    Returns:
        Flask app
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.extensions[ENGINE_KEY] = engine
    app.register_blueprint(api)
    return app


def build_engine(config=Config) -> SessionEngine:
    """
    Build the production engine: catalog, model, collaborator, file persistence

    Loading the model is expensive (~30 seconds); call once at startup.
    """
    # torch/transformers are only imported when serving for real
    from psychebridge.utils.hf_client import HuggingFaceClient

    catalog = Catalog.from_file(config.CATALOG_PATH)

    logger.info("Initializing HuggingFace model (this takes ~30 seconds)...")
    hf_client = HuggingFaceClient(
        model_name=config.MODEL_NAME,
        load_in_4bit=config.LOAD_IN_4BIT,
        device=config.DEVICE
    )
    collaborator = LLMCollaborator(hf_client)

    store = JSONFileStore(config.STATE_DIR) if config.STATE_DIR else MemoryStore()
    return SessionEngine(catalog, collaborator, StatePersistence(store))


if __name__ == '__main__':
    logging.basicConfig(level=Config.LOG_LEVEL, format=Config.LOG_FORMAT)

    app = create_app(build_engine(Config))
    os.makedirs(Config.REPORT_DIR, exist_ok=True)

    print("\n" + "=" * 60)
    print("PSYCHEBRIDGE CLINICAL TRAINING PORTAL - WEB API")
    print("=" * 60)
    print("\nServer starting on http://localhost:5000")
    print("\nPress Ctrl+C to stop the server")
    print("=" * 60 + "\n")

    app.run(debug=False, host='0.0.0.0', port=5000, threaded=True)
