"""
racketprep End-to-End Example (Python)

Walks through the practice and exam flow:
1. Load the problem index
2. Run starter code (incomplete) and a solution interactively
3. Grade a partial solution and a full one
4. Show the step ceiling stopping a runaway loop
5. Grade the sample exam and persist the score

Run: pip install -e . && python examples/e2e/e2e.py
"""

import json
from pathlib import Path

from racketprep import Config, grade_code, run_interactive
from racketprep.documents import load_exam, load_problem_index
from racketprep.exam import grade_exam, parse_answers
from racketprep.store import MemoryStore

HERE = Path(__file__).resolve().parent.parent

print("=== racketprep E2E Demo ===\n")

# 1. Problems
index = load_problem_index(HERE / "problems" / "index.json")
problem = index.get("sum-list")
print("1. Loaded problem index")
print(f"   Problems: {', '.join(p.id for p in index.problems)}")
print(f"   Categories: {', '.join(index.categories)}\n")

# 2. Interactive runs
store = MemoryStore()
report = run_interactive(problem.starter_code, problem=problem, store=store)
print("2. Run the starter code")
for line in report.lines:
    print(f"   [{line.kind}] {line.text}")

solution = """(define (sum-list lon)
  (match lon
    ['() 0]
    [(cons x rest) (+ x (sum-list rest))]))
(sum-list (list 1 2 3))"""
report = run_interactive(solution, problem=problem, store=store)
print("   Run a solution")
for line in report.lines:
    print(f"   [{line.kind}] {line.text}")
print(f"   Stored: {store.data}\n")

# 3. Grading
partial = "(define (sum-list lon) (if (empty? lon) 0 (first lon)))"
r1 = grade_code(partial, problem.hidden_cases, max_points=4)
print("3. Grade a solution that only handles short lists")
print(f"   Result: {r1.to_dict()}")
r2 = grade_code(solution, problem.hidden_cases, max_points=4)
print("   Grade the full solution")
print(f"   Result: {r2.to_dict()}\n")

# 4. Step ceiling
report = run_interactive("(define (spin n) (spin (+ n 1)))\n(spin 0)", config=Config(max_steps=100_000))
print("4. Run an infinite loop with a 100000-step ceiling")
print(f"   Error: {report.error}\n")

# 5. Exam
exam = load_exam(HERE / "exams" / "practice-midterm.json")
answers = parse_answers(json.loads((HERE / "answers" / "practice-midterm.json").read_text()), exam.question_count)
result = grade_exam(exam, answers, store=store)
print("5. Grade the practice midterm")
for q in result.questions:
    print(f"   Question {q.number}: {q.points:g} / {q.max_points:g}")
print(f"   Score: {result.score:g} / {result.total_points:g} ({result.percentage}%, {result.grade})")

print("\n=== Done ===")
