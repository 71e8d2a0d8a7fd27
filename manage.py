# manage.py
import os
import sys

from sqlalchemy.exc import SQLAlchemyError

from app import create_app
from trackshelf.database import db, Playlist
from trackshelf.database.diagnostics import classify_database_error, inspect_schema

SEED_PLAYLISTS = ("My Favorites", "Workout Mix", "Chill Vibes")

USAGE = """Usage:
  python manage.py create_db
  python manage.py reset_db
  python manage.py check_db
  python manage.py upload <base_url> <playlist_id> <file> [<file> ...]"""


def _report_database_error(exc):
    unavailable = classify_database_error(exc)
    if unavailable is not None:
        print(f"Error: {unavailable.message}")
        if unavailable.hint:
            print(f"Hint: {unavailable.hint}")
    else:
        print(f"Error: {exc}")


def create_db():
    """Creates the database tables."""
    app = create_app()
    with app.app_context():
        print(f"Database: {app.config['SQLALCHEMY_DATABASE_URI']}")
        try:
            db.create_all()
        except SQLAlchemyError as exc:
            _report_database_error(exc)
            return 1
        print("Database tables created!")
    return 0


def reset_db():
    """Drops every table, recreates the schema and seeds sample playlists."""
    app = create_app()
    with app.app_context():
        try:
            db.drop_all()
            db.create_all()
            db.session.add_all([Playlist(name=name) for name in SEED_PLAYLISTS])
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            _report_database_error(exc)
            return 1
        print(f"Database reset; created {len(SEED_PLAYLISTS)} sample playlists.")
    return 0


def check_db():
    """Tests the connection and creates missing tables."""
    app = create_app()
    with app.app_context():
        print(f"Database: {app.config['SQLALCHEMY_DATABASE_URI']}")
        report = inspect_schema(db.engine)
        if not report.reachable:
            print(f"Error: cannot connect to database: {report.error}")
            return 1
        print(f"Connected. Found {len(report.tables)} tables: {', '.join(report.tables) or '(none)'}")
        if report.missing:
            print(f"Missing tables: {', '.join(report.missing)}; creating...")
            try:
                db.create_all()
            except SQLAlchemyError as exc:
                _report_database_error(exc)
                return 1
            print("Tables created.")
        try:
            count = Playlist.query.count()
        except SQLAlchemyError as exc:
            _report_database_error(exc)
            return 1
        print(f"Playlists in database: {count}")
    return 0


def upload(base_url, playlist_id, paths):
    """Uploads local files to a playlist of a running server, one at a time."""
    from trackshelf.client import ConsolePublisher, TrackShelfClient, UploadOrchestrator

    missing = [path for path in paths if not os.path.isfile(path)]
    if missing:
        print(f"Error: file(s) not found: {', '.join(missing)}")
        return 1

    orchestrator = UploadOrchestrator(TrackShelfClient(base_url), publisher=ConsolePublisher())
    try:
        result = orchestrator.run(int(playlist_id), paths)
    except KeyboardInterrupt:
        orchestrator.cancel()
        print("Upload was cancelled")
        return 130
    if result.tracks is not None:
        print(f"Playlist {playlist_id} now has {len(result.tracks)} track(s).")
    return 0 if result.failed == 0 else 1


def main(argv):
    if not argv:
        print("No command provided.")
        print(USAGE)
        return 2
    command, args = argv[0], argv[1:]
    if command == 'create_db':
        return create_db()
    if command == 'reset_db':
        return reset_db()
    if command == 'check_db':
        return check_db()
    if command == 'upload':
        if len(args) < 3 or not args[1].isdigit():
            print(USAGE)
            return 2
        return upload(args[0], args[1], args[2:])
    print(f"Unknown command: {command}")
    print(USAGE)
    return 2


if __name__ == '__main__':
    sys.exit(main(sys.argv[1:]))
