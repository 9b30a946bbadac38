import argparse
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from affinity import repo
from affinity.question_loader import load_question_rows, sync_questions


def main() -> None:
    parser = argparse.ArgumentParser(description="Load personality questions into the database")
    parser.add_argument("--path", type=str, default="", help="question bank JSON (defaults to QUESTIONS_PATH)")
    parser.add_argument("--dry-run", action="store_true", help="validate the file without writing")
    args = parser.parse_args()

    path = Path(args.path) if args.path else None
    if args.dry_run:
        rows = load_question_rows(path)
        print(f"Question bank is valid ({len(rows)} questions)")
        return

    count = sync_questions(repo, path)
    print("Seed completed")
    print(f"- questions: {count}")


if __name__ == "__main__":
    main()
