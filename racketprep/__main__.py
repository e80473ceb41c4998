"""CLI: python -m racketprep {run,grade,exam} ..."""

import argparse
import json
import logging
import sys
from pathlib import Path

from .config import Config
from .documents import load_exam, load_problem
from .exam import grade_exam, load_answers, parse_answers, save_answers
from .harness import grade_code, run_interactive
from .store import JsonFileStore, save_code


def _read(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


def cmd_run(args, config: Config) -> int:
    code = _read(args.file)
    problem = load_problem(args.problem) if args.problem else None
    store = JsonFileStore(args.store) if args.store else None
    if store is not None and problem is not None:
        save_code(store, problem.id, code)
    report = run_interactive(code, problem=problem, store=store, config=config)
    for line in report.lines:
        stream = sys.stderr if line.kind == "error" else sys.stdout
        print(line.text, file=stream)
    return 1 if report.error is not None else 0


def cmd_grade(args, config: Config) -> int:
    problem = load_problem(args.problem)
    result = grade_code(_read(args.file), problem.hidden_cases, max_points=args.points, config=config)
    print(json.dumps(result.to_dict(), indent=2))
    return 0


def cmd_exam(args, config: Config) -> int:
    exam = load_exam(args.exam)
    store = JsonFileStore(args.store) if args.store else None
    if args.answers:
        answers = parse_answers(json.loads(_read(args.answers)), exam.question_count)
        if store is not None:
            save_answers(store, exam, answers)
    elif store is not None:
        answers = load_answers(store, exam)
    else:
        print("Error: exam needs ANSWERS or --store with saved answers", file=sys.stderr)
        return 1
    result = grade_exam(exam, answers, store=store, config=config)
    for q in result.questions:
        print(f"Question {q.number}: {q.points:g} / {q.max_points:g}")
    print(f"Score: {result.score:g} / {result.total_points:g} ({result.percentage}%, {result.grade})")
    print(f"You answered {result.correct_count} out of {result.question_count} questions correctly.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="racketprep", description="Run and grade teaching-Scheme code")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a source file and print its output")
    run.add_argument("file", help="Source file")
    run.add_argument("--problem", help="Problem JSON whose hidden cases run after the code")
    run.add_argument("--store", help="JSON file recording completion and saved code")
    run.set_defaults(func=cmd_run)

    grade = sub.add_parser("grade", help="Grade a source file against a problem's hidden cases")
    grade.add_argument("file", help="Source file")
    grade.add_argument("--problem", required=True, help="Problem JSON")
    grade.add_argument("--points", type=float, default=1, help="Points for a full pass")
    grade.set_defaults(func=cmd_grade)

    exam = sub.add_parser("exam", help="Grade answers to an exam")
    exam.add_argument("exam", help="Exam JSON")
    exam.add_argument("answers", nargs="?", help="Answers JSON: {\"1\": {\"type\": \"code\", \"code\": ...}}")
    exam.add_argument("--store", help="JSON file for saved answers, completion and score")
    exam.set_defaults(func=cmd_exam)
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        config = Config.from_env()
        return args.func(args, config)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
