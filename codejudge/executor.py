import threading
import uuid
from functools import lru_cache
from typing import List, Optional, Sequence, Union

from codejudge.classifier import classify_outcome
from codejudge.docker_runner import DockerRunner, Runner
from codejudge.exceptions import JudgeCancelledError, NoTestCasesError
from codejudge.languages import Language, LanguageProfile, LanguageRegistry
from codejudge.logger import logger, submission_id_context
from codejudge.normalizer import outputs_match
from codejudge.remote_runner import Judge0Runner
from codejudge.schemas import (
    ClassifiedError,
    ErrorKind,
    ExecutionRequest,
    ResourceLimits,
    SubmissionResult,
    TestCase,
    TestCaseResult,
    Verdict,
)
from codejudge.settings import Settings, get_settings


class Judge:
    """
    Evaluate submitted code against an ordered battery of test cases.

    Cases run one at a time, in order, and evaluation stops at the first case
    that does not pass cleanly. Later cases, hidden ones included, are never
    executed once an earlier case has failed.
    """

    def __init__(self, runner: Runner, registry: LanguageRegistry, settings: Optional[Settings] = None):
        self.runner = runner
        self.registry = registry
        self.settings = settings or get_settings()

    def default_limits(self) -> ResourceLimits:
        return ResourceLimits(
            memory_limit_mb=self.settings.DEFAULT_MEMORY_LIMIT_MB,
            time_limit_seconds=self.settings.DEFAULT_TIME_LIMIT_SECONDS,
        )

    def judge(
        self,
        code: str,
        language_id: Union[Language, str],
        test_cases: Sequence[TestCase],
        limits: Optional[ResourceLimits] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SubmissionResult:
        profile = self.registry.get(language_id)
        cases = list(test_cases)
        if not cases:
            raise NoTestCasesError()
        limits = limits or self.default_limits()

        token = submission_id_context.set(uuid.uuid4().hex[:12])
        try:
            logger.info(f"Judging {profile.id.value} submission against {len(cases)} test cases")
            results: List[TestCaseResult] = []
            for index, case in enumerate(cases):
                if cancel_event is not None and cancel_event.is_set():
                    logger.info(f"Judging cancelled before test case {index}")
                    raise JudgeCancelledError(results)
                result = self._evaluate(index, case, profile, code, limits)
                results.append(result)
                if not result.passed:
                    break

            verdict = reduce_verdict(results)
            submission = SubmissionResult(
                verdict=verdict,
                test_results=results,
                message=summary_message(verdict, results, len(cases)),
                total_count=len(cases),
            )
            logger.info(f"Verdict {verdict.value} after {len(results)}/{len(cases)} test cases")
            return submission
        finally:
            submission_id_context.reset(token)

    def run_one(
        self,
        code: str,
        language_id: Union[Language, str],
        stdin: str,
        expected_output: Optional[str] = None,
        limits: Optional[ResourceLimits] = None,
    ) -> TestCaseResult:
        """Run a single caller-supplied input. Without an expected output, any clean run passes."""
        profile = self.registry.get(language_id)
        limits = limits or self.default_limits()
        case = TestCase(input=stdin, expected_output=expected_output or '')

        token = submission_id_context.set(uuid.uuid4().hex[:12])
        try:
            return self._evaluate(0, case, profile, code, limits, compare=expected_output is not None)
        finally:
            submission_id_context.reset(token)

    def _evaluate(
        self,
        index: int,
        case: TestCase,
        profile: LanguageProfile,
        code: str,
        limits: ResourceLimits,
        compare: bool = True,
    ) -> TestCaseResult:
        request = ExecutionRequest(
            source_code=code,
            language=profile,
            stdin=case.input,
            memory_limit_mb=limits.memory_limit_mb,
            time_limit_seconds=limits.time_limit_seconds,
        )
        try:
            outcome = self.runner.execute(request)
        except Exception as e:  # noqa: BLE001 - runner failures become results
            logger.exception(f"Runner raised on test case {index}")
            error = ClassifiedError(kind=ErrorKind.INTERNAL_ERROR, message=f'Judging infrastructure error: {e}')
            return _case_result(index, case, passed=False, error=error, expected=compare)

        if not outcome.succeeded:
            error = classify_outcome(outcome, profile, limits.memory_limit_mb, limits.time_limit_seconds)
            logger.info(f"Test case {index}: {error.kind.value}")
            return _case_result(
                index, case, passed=False, actual=outcome.stdout, error=error,
                wall_time_ms=outcome.wall_time_ms, expected=compare,
            )

        passed = outputs_match(outcome.stdout, case.expected_output) if compare else True
        logger.info(f"Test case {index}: {'passed' if passed else 'wrong answer'} in {outcome.wall_time_ms}ms")
        return _case_result(
            index, case, passed=passed, actual=outcome.stdout,
            wall_time_ms=outcome.wall_time_ms, expected=compare,
        )


def _case_result(index, case, passed, actual=None, error=None, wall_time_ms=None, expected=True) -> TestCaseResult:
    if case.is_hidden:
        if error is not None:
            error = ClassifiedError(kind=error.kind, message=Verdict.from_error_kind(error.kind).display_name)
        return TestCaseResult(index=index, passed=passed, is_hidden=True, error=error, wall_time_ms=wall_time_ms)
    return TestCaseResult(
        index=index,
        passed=passed,
        actual_output=actual,
        expected_output=case.expected_output if expected else None,
        error=error,
        wall_time_ms=wall_time_ms,
    )


def reduce_verdict(results: Sequence[TestCaseResult]) -> Verdict:
    if not results:
        raise NoTestCasesError()
    for result in results:
        if not result.passed:
            if result.error is None:
                return Verdict.WRONG_ANSWER
            return Verdict.from_error_kind(result.error.kind)
    return Verdict.ACCEPTED


def single_case_verdict(result: TestCaseResult) -> Verdict:
    return reduce_verdict([result])


def summary_message(verdict: Verdict, results: Sequence[TestCaseResult], total: int) -> str:
    if verdict == Verdict.ACCEPTED:
        if total == 1:
            return 'Accepted: the test case passed'
        return f'Accepted: all {total} test cases passed'

    failed = next(r for r in results if not r.passed)
    position = failed.index + 1
    if verdict == Verdict.WRONG_ANSWER or failed.is_hidden or failed.error is None:
        return f'{verdict.display_name} on test case {position}'
    return f'{verdict.display_name} on test case {position}: {failed.error.message}'


def build_runner(settings: Settings) -> Runner:
    if settings.RUNNER == 'judge0':
        return Judge0Runner(settings=settings)
    return DockerRunner(settings=settings)


@lru_cache(maxsize=1)
def get_judge() -> Judge:
    settings = get_settings()
    return Judge(build_runner(settings), LanguageRegistry.from_settings(settings), settings)


def judge(code: str, language_id: Union[Language, str], test_cases: Sequence[TestCase],
          limits: Optional[ResourceLimits] = None, cancel_event: Optional[threading.Event] = None) -> SubmissionResult:
    return get_judge().judge(code, language_id, test_cases, limits, cancel_event)


def run_one(code: str, language_id: Union[Language, str], stdin: str,
            expected_output: Optional[str] = None, limits: Optional[ResourceLimits] = None) -> TestCaseResult:
    return get_judge().run_one(code, language_id, stdin, expected_output, limits)
