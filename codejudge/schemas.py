from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from codejudge.languages import LanguageProfile


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class ResourceLimits(_Frozen):
    memory_limit_mb: int = Field(default=256, gt=0)
    time_limit_seconds: float = Field(default=1.0, gt=0)


class ExecutionRequest(_Frozen):
    source_code: str
    language: LanguageProfile
    stdin: str = ''
    memory_limit_mb: int = Field(gt=0)
    time_limit_seconds: float = Field(gt=0)


class KilledReason(str, Enum):
    NONE = 'none'
    OOM = 'oom'
    TIMEOUT = 'timeout'


class ExecutionStage(str, Enum):
    LAUNCH = 'launch'
    COMPILE = 'compile'
    RUN = 'run'


class ExecutionOutcome(_Frozen):
    stdout: str = ''
    stderr: str = ''
    exit_code: int = 0
    wall_time_ms: int = 0
    killed_reason: KilledReason = KilledReason.NONE
    stage: ExecutionStage = ExecutionStage.RUN

    @property
    def succeeded(self) -> bool:
        return (
            self.stage == ExecutionStage.RUN
            and self.killed_reason == KilledReason.NONE
            and self.exit_code == 0
        )


class ErrorKind(str, Enum):
    COMPILE_ERROR = 'CompileError'
    RUNTIME_ERROR = 'RuntimeError'
    MEMORY_LIMIT_EXCEEDED = 'MemoryLimitExceeded'
    TIME_LIMIT_EXCEEDED = 'TimeLimitExceeded'
    INTERNAL_ERROR = 'InternalError'


class ClassifiedError(_Frozen):
    kind: ErrorKind
    message: str
    source_line: Optional[int] = None
    source_column: Optional[int] = None


class TestCase(_Frozen):
    __test__ = False

    input: str
    expected_output: str
    is_hidden: bool = False


class TestCaseResult(_Frozen):
    __test__ = False

    index: int
    passed: bool
    is_hidden: bool = False
    actual_output: Optional[str] = None
    expected_output: Optional[str] = None
    error: Optional[ClassifiedError] = None
    wall_time_ms: Optional[int] = None


class Verdict(str, Enum):
    ACCEPTED = 'Accepted'
    WRONG_ANSWER = 'WrongAnswer'
    COMPILE_ERROR = 'CompileError'
    RUNTIME_ERROR = 'RuntimeError'
    MEMORY_LIMIT_EXCEEDED = 'MemoryLimitExceeded'
    TIME_LIMIT_EXCEEDED = 'TimeLimitExceeded'
    INTERNAL_ERROR = 'InternalError'

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def from_error_kind(cls, kind: ErrorKind) -> 'Verdict':
        return cls(kind.value)


_DISPLAY_NAMES = {
    Verdict.ACCEPTED: 'Accepted',
    Verdict.WRONG_ANSWER: 'Wrong Answer',
    Verdict.COMPILE_ERROR: 'Compile Error',
    Verdict.RUNTIME_ERROR: 'Runtime Error',
    Verdict.MEMORY_LIMIT_EXCEEDED: 'Memory Limit Exceeded',
    Verdict.TIME_LIMIT_EXCEEDED: 'Time Limit Exceeded',
    Verdict.INTERNAL_ERROR: 'Internal Error',
}


class SubmissionResult(_Frozen):
    verdict: Verdict
    test_results: List[TestCaseResult]
    message: str
    total_count: int

    @computed_field
    @property
    def passed_count(self) -> int:
        return sum(1 for r in self.test_results if r.passed)


# HTTP payloads

class JudgeRequest(BaseModel):
    code: str
    language: str
    tests: List[TestCase]
    limits: Optional[ResourceLimits] = None


class RunRequest(BaseModel):
    code: str
    language: str
    input: str = ''
    expected_output: Optional[str] = None
    limits: Optional[ResourceLimits] = None


class RunResponse(BaseModel):
    verdict: Verdict
    result: TestCaseResult
