"""
Runner that delegates execution to a Judge0-compatible HTTP judging service.

Judge0 statuses are translated into the same ExecutionOutcome shape the
local DockerRunner produces, so the orchestrator cannot tell them apart.
"""

import base64
import time
from typing import Any, Callable, Dict, Optional

import httpx

from codejudge.docker_runner import KILLED_EXIT, TIMEOUT_EXIT, reports_out_of_memory
from codejudge.languages import Language
from codejudge.logger import logger
from codejudge.schemas import ExecutionOutcome, ExecutionRequest, ExecutionStage, KilledReason
from codejudge.settings import Settings, get_settings

JUDGE0_LANGUAGE_IDS = {
    Language.C: 50,
    Language.CPP: 54,
    Language.JAVA: 62,
    Language.PYTHON: 71,
}

IN_QUEUE = 1
PROCESSING = 2
ACCEPTED = 3
WRONG_ANSWER = 4
TIME_LIMIT_EXCEEDED = 5
COMPILATION_ERROR = 6
EXEC_FORMAT_ERROR = 14

# runtime error statuses mapped to the exit status a shell would report
RUNTIME_ERROR_EXIT_CODES = {
    7: 139,   # SIGSEGV
    8: 153,   # SIGXFSZ
    9: 136,   # SIGFPE
    10: 134,  # SIGABRT
    11: 1,    # NZEC
    12: 1,    # other
}

SUBMISSION_TIMEOUT_MESSAGE = 'Submission timeout: code execution took too long'


class Judge0Error(Exception):
    pass


def _b64encode(text: str) -> str:
    return base64.b64encode(text.encode('utf-8')).decode('ascii')


def _b64decode(value: Optional[str]) -> str:
    if not value:
        return ''
    try:
        return base64.b64decode(value).decode('utf-8', errors='replace')
    except ValueError:
        return value


class Judge0Runner:
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        max_poll_attempts: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.base_url = (base_url or settings.JUDGE0_API_URL).rstrip('/')
        self.api_key = api_key if api_key is not None else settings.JUDGE0_API_KEY
        self.max_poll_attempts = max_poll_attempts or settings.JUDGE0_MAX_POLL_ATTEMPTS
        self.client = client or httpx.Client(timeout=20.0)
        self.sleep = sleep

    @property
    def use_rapidapi(self) -> bool:
        return 'rapidapi.com' in self.base_url

    def _headers(self) -> Dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        if self.use_rapidapi:
            headers['X-RapidAPI-Key'] = self.api_key or ''
            headers['X-RapidAPI-Host'] = httpx.URL(self.base_url).host
        else:
            headers['Authorization'] = f'Bearer {self.api_key}'
        return headers

    def execute(self, request: ExecutionRequest) -> ExecutionOutcome:
        if not self.api_key:
            return ExecutionOutcome(
                stderr='Judge0 API key not configured',
                exit_code=-1,
                stage=ExecutionStage.LAUNCH,
            )

        started = time.monotonic()
        try:
            token = self._create_submission(request)
            result = self._wait_for_result(token)
        except (httpx.HTTPError, Judge0Error) as e:
            logger.error(f"Judge0 request failed: {e}")
            return ExecutionOutcome(stderr=str(e), exit_code=-1, stage=ExecutionStage.LAUNCH)

        wall_time_ms = int((time.monotonic() - started) * 1000)
        if result is None:
            return ExecutionOutcome(stderr=SUBMISSION_TIMEOUT_MESSAGE, exit_code=-1, wall_time_ms=wall_time_ms)
        return self._translate(result, request, wall_time_ms)

    def _create_submission(self, request: ExecutionRequest) -> str:
        payload = {
            'source_code': _b64encode(request.source_code),
            'language_id': JUDGE0_LANGUAGE_IDS[request.language.id],
            'stdin': _b64encode(request.stdin),
            'cpu_time_limit': request.time_limit_seconds,
            'memory_limit': request.memory_limit_mb * 1024,
        }
        response = self.client.post(
            f'{self.base_url}/submissions',
            params={'base64_encoded': 'true', 'wait': 'false'},
            json=payload,
            headers=self._headers(),
        )
        if response.is_error:
            raise Judge0Error(f'Failed to create submission: {response.status_code} - {response.text}')
        token = response.json().get('token')
        if not token:
            raise Judge0Error('Judge0 response did not contain a submission token')
        return token

    def _get_submission(self, token: str) -> Dict[str, Any]:
        response = self.client.get(
            f'{self.base_url}/submissions/{token}',
            params={'base64_encoded': 'true'},
            headers=self._headers(),
        )
        if response.is_error:
            raise Judge0Error(f'Failed to get submission result: {response.status_code} - {response.text}')
        return response.json()

    def _wait_for_result(self, token: str) -> Optional[Dict[str, Any]]:
        """Poll until the submission leaves the queue; None once attempts run out."""
        for attempt in range(self.max_poll_attempts):
            result = self._get_submission(token)
            status_id = (result.get('status') or {}).get('id')
            if status_id not in (IN_QUEUE, PROCESSING):
                return result
            self.sleep(min(1.0 * (attempt + 1), 2.0))
        logger.warning(f"Judge0 submission {token} still pending after {self.max_poll_attempts} polls")
        return None

    def _translate(self, result: Dict[str, Any], request: ExecutionRequest, wall_time_ms: int) -> ExecutionOutcome:
        status_id = (result.get('status') or {}).get('id')
        stdout = _b64decode(result.get('stdout'))
        stderr = _b64decode(result.get('stderr'))
        message = _b64decode(result.get('message'))

        if status_id in (ACCEPTED, WRONG_ANSWER):
            return ExecutionOutcome(stdout=stdout, stderr=stderr, exit_code=0, wall_time_ms=wall_time_ms)

        if status_id == TIME_LIMIT_EXCEEDED:
            return ExecutionOutcome(
                stdout=stdout, stderr=stderr, exit_code=TIMEOUT_EXIT,
                wall_time_ms=wall_time_ms, killed_reason=KilledReason.TIMEOUT,
            )

        if status_id == COMPILATION_ERROR:
            return ExecutionOutcome(
                stderr=_b64decode(result.get('compile_output')) or message,
                exit_code=1,
                wall_time_ms=wall_time_ms,
                stage=ExecutionStage.COMPILE,
            )

        if status_id in RUNTIME_ERROR_EXIT_CODES:
            exit_code = RUNTIME_ERROR_EXIT_CODES[status_id]
            if status_id == 11 and result.get('exit_code'):
                exit_code = int(result['exit_code'])
            memory_kb = result.get('memory') or 0
            if memory_kb >= request.memory_limit_mb * 1024 or reports_out_of_memory(stderr):
                return ExecutionOutcome(
                    stdout=stdout, stderr=stderr, exit_code=KILLED_EXIT,
                    wall_time_ms=wall_time_ms, killed_reason=KilledReason.OOM,
                )
            return ExecutionOutcome(
                stdout=stdout, stderr=stderr or message, exit_code=exit_code, wall_time_ms=wall_time_ms,
            )

        if status_id == EXEC_FORMAT_ERROR:
            return ExecutionOutcome(stdout=stdout, stderr=stderr or message, exit_code=1, wall_time_ms=wall_time_ms)

        detail = message or f'Execution failed with status {status_id}'
        return ExecutionOutcome(stderr=detail, exit_code=-1, wall_time_ms=wall_time_ms, stage=ExecutionStage.LAUNCH)
