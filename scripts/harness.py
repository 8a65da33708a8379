"""Assertion tracking and result reporting for integration scenarios."""
import json
import threading
import time
import traceback

from harness_errors import is_not_found

_output_lock = threading.Lock()


# ---------------------------------------------------------------------------
# Test Scenario (context manager for assertion tracking)
# ---------------------------------------------------------------------------

class TestScenario:
    """Tracks assertions and duration for a single test scenario.

    Output is buffered and printed in one block on exit so scenarios that
    run in parallel do not interleave.
    """

    __test__ = False

    def __init__(self, name):
        self.name = name
        self.assertions = []
        self.status = "PASS"
        self.start_time = None
        self.duration = 0
        self.lines = []

    def log(self, message):
        self.lines.append(message)

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.time() - self.start_time
        if exc_type:
            self.status = "FAIL"
            self.assertions.append({
                "message": f"Exception: {exc_val}",
                "passed": False,
            })
            self.log(f"  [FAIL] Exception: {exc_val}")
            self.log("".join(traceback.format_exception(exc_type, exc_val, exc_tb)).rstrip())
        passed = sum(1 for a in self.assertions if a["passed"])
        failed = sum(1 for a in self.assertions if not a["passed"])
        with _output_lock:
            print(f"\n{'=' * 60}")
            print(f"SCENARIO: {self.name}")
            print(f"{'=' * 60}")
            for line in self.lines:
                print(line)
            print(f"\n  Result: [{self.status}] {passed} passed, {failed} failed ({self.duration:.0f}s)")
        # suppress errors so suite continues; let interrupts through
        return exc_type is None or issubclass(exc_type, Exception)

    def _record(self, passed, message):
        self.assertions.append({"message": message, "passed": passed})
        tag = "PASS" if passed else "FAIL"
        self.log(f"  [{tag}] {message}")
        if not passed:
            self.status = "FAIL"
        return passed

    def skip(self, reason):
        self.status = "SKIP"
        self.log(f"  [SKIP] {reason}")

    def assert_true(self, condition, message):
        return self._record(bool(condition), message)

    def assert_equal(self, actual, expected, message):
        passed = actual == expected
        return self._record(passed, f"{message} (expected={expected}, actual={actual})")

    def assert_not_found(self, call, message):
        """Pass only if `call()` raises NotFound; any other outcome fails."""
        try:
            result = call()
        except Exception as e:
            if is_not_found(e):
                return self._record(True, message)
            return self._record(
                False, f"{message} (expected NotFound, got {type(e).__name__}: {e})")
        return self._record(False, f"{message} (expected NotFound, got row {result})")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

def summarize(scenarios):
    total_pass = sum(
        sum(1 for a in s.assertions if a["passed"])
        for s in scenarios
    )
    total_fail = sum(
        sum(1 for a in s.assertions if not a["passed"])
        for s in scenarios
    )
    return {
        "scenarios": [
            {
                "name": s.name,
                "status": s.status,
                "duration": s.duration,
                "assertions": s.assertions,
            }
            for s in scenarios
        ],
        "total_pass": total_pass,
        "total_fail": total_fail,
        "total_skip": sum(1 for s in scenarios if s.status == "SKIP"),
        "total_duration": sum(s.duration for s in scenarios),
    }


def save_results(scenarios, path):
    """Write test results JSON and return the summary that was written."""
    results = summarize(scenarios)
    with open(path, "w") as f:
        json.dump(results, f, indent=2)
    print(f"\nResults written to {path}")
    return results
