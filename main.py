"""
Console Harness for the PsycheBridge session engine

Simple console loop to exercise the engine without the web layer:
select a user, unlock a course, run a simulation, review and evaluate.
"""

import logging
import sys

from psychebridge.catalog import Catalog
from psychebridge.config import Config
from psychebridge.contracts import Evaluation
from psychebridge.core.collaborator import LLMCollaborator
from psychebridge.core.session_engine import SessionEngine
from psychebridge.errors import PsycheBridgeError
from psychebridge.persistence import JSONFileStore, StatePersistence

logging.basicConfig(level=logging.WARNING, format=Config.LOG_FORMAT)
logger = logging.getLogger(__name__)

END_COMMANDS = {"/end", "quit", "exit", "stop"}


def print_separator(char="=", length=60):
    """Print a separator line"""
    print(char * length)


def choose(prompt, options, label):
    """
    Numbered menu

    Args:
        prompt: Heading to print
        options: Items to choose from
        label: Callable rendering an item

    Returns:
        Chosen item, or None on empty input
    """
    print(f"\n{prompt}")
    for i, option in enumerate(options, 1):
        print(f"  {i}. {label(option)}")

    while True:
        raw = input("> ").strip()
        if not raw:
            return None
        if raw.isdigit() and 1 <= int(raw) <= len(options):
            return options[int(raw) - 1]
        print("Please enter a number from the list.")


def on_engine_event(event, payload):
    """Engine subscription: show a waiting indicator while the patient 'types'"""
    if event == 'reply_pending':
        print("  [Patient is typing...]")
    elif event == 'reply_dropped':
        print("  [Reply discarded: session already ended]")


def run_simulation(engine, session):
    """Chat loop for one active session"""
    course = engine.catalog.get_course(session.course_id)
    print_separator()
    print(f"SIMULATION: {course.patient_scenario}")
    print_separator()
    print("Type '/end' to finish the session\n")

    while True:
        text = input("You: ").strip()
        if not text:
            print("Please enter a message.\n")
            continue

        if text.lower() in END_COMMANDS:
            engine.end_session(session.id)
            print("\nSession completed. It is now awaiting staff evaluation.")
            return

        result = engine.submit_turn(session.id, text)
        print(f"\nPatient: {result.patient_reply}\n")
        if result.collaborator_failed:
            print(f"  [Generation failed: {result.debug.get('collaborator_error')}]\n")


def student_menu(engine, student):
    """Course catalog, unlocks and simulations for a student"""
    while True:
        summary = engine.dashboard(student.id)
        print_separator("-")
        print(f"{student.name}: {summary.courses} courses completed, "
              f"{summary.sessions} sessions, {summary.awaiting_evaluation} awaiting evaluation")

        progress = engine.get_progress(student.id)
        course = choose(
            "Select a course (empty to log out):",
            engine.catalog.list_courses(),
            lambda c: f"{c.title}{' [COMPLETED]' if progress.has_completed(c.id) else ''}"
        )
        if course is None:
            return

        print(f"\n{course.title}\n{course.description}\n\nLearning Modules:")
        for i, module in enumerate(course.modules, 1):
            print(f"  {i}. {module}")

        if not progress.has_completed(course.id):
            answer = input("\nAcknowledge all modules and complete the course? (y/n): ").strip().lower()
            if answer != 'y':
                continue
            engine.mark_completed(student.id, course.id)
            print("Course completed! Simulation unlocked.")

        answer = input("\nStart simulation? (y/n): ").strip().lower()
        if answer == 'y':
            session = engine.start_session(student.id, course.id)
            run_simulation(engine, session)


def staff_menu(engine, staff):
    """Review queue and evaluation form for staff"""
    while True:
        queue = engine.pending_reviews()
        if not queue:
            print("\nNo simulations awaiting evaluation.")
            return

        session = choose(
            "Select a session to review (empty to log out):",
            queue,
            lambda s: (f"{engine.catalog.get_user(s.student_id).name} - "
                       f"{engine.catalog.get_course(s.course_id).title}")
        )
        if session is None:
            return

        print_separator("-")
        for entry in session.transcript:
            print(f"{entry.role.value.upper()}: {entry.content}")
        print_separator("-")

        if input("Generate supervisor briefing? (y/n): ").strip().lower() == 'y':
            print(f"\n{engine.generate_briefing(session.id).text}\n")

        form = {
            'score': input("Score (0-100): "),
            'feedback': input("Feedback: "),
            'strengths': input("Strengths: "),
            'improvements': input("Improvements: ")
        }
        try:
            engine.evaluate(session.id, Evaluation.from_form(form, staff_id=staff.id))
            print("Evaluation submitted successfully.")
        except PsycheBridgeError as e:
            print(f"Evaluation rejected: {e}")


def main():
    """Run console harness"""
    print_separator()
    print("PSYCHEBRIDGE - CONSOLE HARNESS")
    print_separator()
    print("\nInitializing modules (this may take 30 seconds)...")

    try:
        from psychebridge.utils.hf_client import HuggingFaceClient

        hf_client = HuggingFaceClient(
            model_name=Config.MODEL_NAME,
            load_in_4bit=Config.LOAD_IN_4BIT,
            device=Config.DEVICE
        )
        engine = SessionEngine(
            catalog=Catalog.from_file(Config.CATALOG_PATH),
            collaborator=LLMCollaborator(hf_client),
            persistence=StatePersistence(JSONFileStore(Config.STATE_DIR))
        )
        engine.subscribe(on_engine_event)

    except Exception as e:
        print(f"\nFailed to initialize: {e}")
        import traceback
        traceback.print_exc()
        return 1

    while True:
        try:
            user = choose(
                "Select role to enter (empty to quit):",
                engine.catalog.list_users(),
                lambda u: f"{u.name} ({u.role.value})"
            )
            if user is None:
                break

            if user.is_student:
                student_menu(engine, user)
            else:
                staff_menu(engine, user)

        except KeyboardInterrupt:
            print("\n\nInterrupted by user (Ctrl+C)")
            break

        except PsycheBridgeError as e:
            print(f"\nERROR: {e}")

    print_separator()
    print("Console harness complete")
    print_separator()
    return 0


if __name__ == '__main__':
    sys.exit(main())
