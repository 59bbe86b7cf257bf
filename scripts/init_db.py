import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.facreq.models import Base, DocumentType, ValidationRule  # noqa: E402
from scripts._db_utils import create_script_engine, script_session  # noqa: E402

# name, vault folder, required keywords, forbidden keywords, extensions, max MB, min words
DEFAULT_DOCUMENT_TYPES: list[tuple[str, str, str, str, str, int, int]] = [
    ("Syllabus", "Syllabus", "Vision|Mission, Course Description, Grading System", "lorem ipsum", ".pdf, .docx", 10, 150),
    ("Course Outline", "Course_Outline", "Course Outline, Learning Outcomes", "", ".pdf, .docx", 10, 50),
    ("Grading Sheet", "Grading_Sheet", "Student, Grade", "", ".xlsx, .pdf", 10, 0),
    ("Table of Specifications", "TOS", "Specification", "", ".pdf, .docx, .xlsx", 10, 0),
]


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed document types and their validation rules in an idempotent way.
    Existing rules are left alone so administrator edits survive re-runs.
    """
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///facreq.db").strip()

    with script_session(db_url) as s:
        for name, folder, required, forbidden, extensions, max_mb, min_words in DEFAULT_DOCUMENT_TYPES:
            dt = s.query(DocumentType).filter(DocumentType.name == name).one_or_none()
            if not dt:
                dt = DocumentType(name=name, folder_label=folder, is_required=True, is_active=True)
                s.add(dt)
            if dt.rule is None:
                dt.rule = ValidationRule(
                    required_keywords=required,
                    forbidden_keywords=forbidden,
                    allowed_extensions=extensions,
                    max_file_size_mb=max_mb,
                    min_word_count=min_words,
                )

    print("Initialized database (seed_only).")
    print(f"Document types: {', '.join(t[0] for t in DEFAULT_DOCUMENT_TYPES)}")


def create_tables(*, database_url: str | None = None) -> None:
    """Local/dev shortcut for `alembic upgrade head`."""
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///facreq.db").strip()
    engine = create_script_engine(db_url)
    try:
        Base.metadata.create_all(bind=engine)
    finally:
        engine.dispose()


def main() -> None:
    if "--create-tables" in sys.argv[1:]:
        create_tables()
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
