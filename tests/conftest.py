"""
Pytest configuration for the train status tests.
Prints a per-class pass/fail summary at the end of the run.
"""

from collections import defaultdict

GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
RESET = "\033[0m"


def _group(nodeid):
    # tests/test_file.py::TestClass::test_method -> test_file.py::TestClass
    parts = nodeid.split("::")
    module = parts[0].rsplit("/", 1)[-1]
    if len(parts) >= 3:
        return f"{module}::{parts[1]}"
    return module


def pytest_terminal_summary(terminalreporter, exitstatus, config):
    outcomes = ('passed', 'failed', 'skipped')
    groups = defaultdict(lambda: defaultdict(list))
    for outcome in outcomes:
        for report in terminalreporter.stats.get(outcome, []):
            if getattr(report, 'when', 'call') in ('call', 'setup'):
                groups[_group(report.nodeid)][outcome].append(report.nodeid.split("::")[-1])

    if not groups:
        return

    write = terminalreporter.write_line
    write("")
    write("=" * 60)
    write("  TRAIN STATUS TEST SUMMARY")
    write("=" * 60)

    totals = dict.fromkeys(outcomes, 0)
    for name in sorted(groups):
        results = groups[name]
        counts = {outcome: len(results[outcome]) for outcome in outcomes}
        for outcome in outcomes:
            totals[outcome] += counts[outcome]

        if counts['failed']:
            mark = f"{RED}✗{RESET}"
        elif not counts['passed']:
            mark = f"{YELLOW}○{RESET}"
        else:
            mark = f"{GREEN}✓{RESET}"
        write(f"  {mark} {name}: {counts['passed']}/{sum(counts.values())} passed")
        for test in results['failed']:
            write(f"      {RED}✗{RESET} {test}")

    write("-" * 60)
    verdict = f"{GREEN}✓ ALL TESTS PASSED{RESET}" if not totals['failed'] else f"{RED}✗ {totals['failed']} FAILED{RESET}"
    write(f"  {verdict}  ({totals['passed']} passed, {totals['failed']} failed, {totals['skipped']} skipped)")
    write("=" * 60)
    write("")
