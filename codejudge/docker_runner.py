import os
import re
import shutil
import tempfile
import time
import uuid
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, Protocol

import docker
from docker.errors import DockerException, NotFound
from docker.models.containers import Container

from codejudge.exceptions import SandboxUnavailableError
from codejudge.languages import WORK_DIR
from codejudge.logger import logger
from codejudge.schemas import ExecutionOutcome, ExecutionRequest, ExecutionStage, KilledReason
from codejudge.settings import Settings, get_settings

WORKSPACE_MOUNT = '/workspace'
INPUT_FILE_NAME = 'input.txt'

# exit statuses reported by coreutils `timeout`
TIMEOUT_EXIT = 124
KILLED_EXIT = 137

# the program argv arrives as positional parameters, never as shell text
STDIN_WRAPPER = f'exec "$@" < {WORK_DIR}/{INPUT_FILE_NAME}'

# container root holds no CAP_CHOWN, so host ownership cannot be kept
STAGE_COMMAND = ['cp', '-R', '--preserve=mode,timestamps', f'{WORKSPACE_MOUNT}/.', f'{WORK_DIR}/']

# heap exhaustion the runtime reports itself instead of being killed by the kernel
_OUT_OF_MEMORY = re.compile(r'java\.lang\.OutOfMemoryError|^MemoryError\b', re.MULTILINE)


class Runner(Protocol):
    def execute(self, request: ExecutionRequest) -> ExecutionOutcome:
        ...


def _read_output(raw, limit: int) -> str:
    if raw is None:
        return ''
    if isinstance(raw, tuple):
        out = b''.join([p for p in raw if p])
    else:
        out = raw
    if isinstance(out, str):
        return out[:limit]
    return out[:limit].decode('utf-8', errors='replace')


def reports_out_of_memory(stderr: str) -> bool:
    return bool(_OUT_OF_MEMORY.search(stderr))


class DockerRunner:
    """
    Run one ExecutionRequest inside a fresh, throwaway Docker container.

    The container has no network, a read-only root filesystem, a size-bounded
    tmpfs work directory, one CPU and a hard memory ceiling (swap included).
    Source and stdin travel as files in a per-call host workspace that is
    bind-mounted read-only, so untrusted bytes are never parsed by a shell.
    Container and workspace are removed on every exit path.
    """

    def __init__(
        self,
        client: Optional[docker.DockerClient] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or get_settings()
        self._client = client
        self.clock = clock

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
            except DockerException as e:
                raise SandboxUnavailableError(str(e))
        return self._client

    def execute(self, request: ExecutionRequest) -> ExecutionOutcome:
        name = f'codejudge-{uuid.uuid4().hex[:8]}'
        logger.debug(f"Starting sandbox {name} ({request.language.id.value}, image {request.language.runtime_image})")
        try:
            with self._environment(request, name) as container:
                return self._compile_and_run(container, request)
        except (DockerException, SandboxUnavailableError, OSError) as e:
            logger.error(f"Sandbox {name} failed: {e}")
            return ExecutionOutcome(stderr=str(e), exit_code=-1, stage=ExecutionStage.LAUNCH)

    @contextmanager
    def _environment(self, request: ExecutionRequest, name: str) -> Iterator[Container]:
        workspace = tempfile.mkdtemp(prefix='codejudge_', dir=self.settings.WORKSPACE_ROOT)
        container = None
        try:
            self._materialize(workspace, request)
            container = self._start_container(workspace, request, name)
            yield container
        finally:
            self._remove_container(container, name)
            shutil.rmtree(workspace, ignore_errors=True)

    def _materialize(self, workspace: str, request: ExecutionRequest) -> None:
        files = {
            request.language.source_file_name: request.source_code,
            INPUT_FILE_NAME: request.stdin,
        }
        for file_name, content in files.items():
            path = os.path.join(workspace, file_name)
            with open(path, 'w', encoding='utf-8', newline='') as f:
                f.write(content)
            os.chmod(path, 0o644)
        # container root runs without CAP_DAC_OVERRIDE
        os.chmod(workspace, 0o755)

    def _start_container(self, workspace: str, request: ExecutionRequest, name: str) -> Container:
        s = self.settings
        lifetime = s.COMPILE_TIMEOUT_SECONDS + int(request.time_limit_seconds) + 1 + s.SANDBOX_GRACE_SECONDS
        mem_limit = f'{request.memory_limit_mb}m'

        container = self.client.containers.run(
            request.language.runtime_image,
            command=['sleep', str(lifetime)],
            name=name,
            detach=True,
            working_dir=WORK_DIR,
            volumes={workspace: {'bind': WORKSPACE_MOUNT, 'mode': 'ro'}},
            environment={'HOME': WORK_DIR, 'TMPDIR': WORK_DIR},
            network_mode='none',
            read_only=True,
            tmpfs={WORK_DIR: f'rw,exec,nosuid,size={s.SANDBOX_TMPFS_SIZE}'},
            security_opt=['no-new-privileges'],
            cap_drop=['ALL'],
            mem_limit=mem_limit,
            memswap_limit=mem_limit,
            nano_cpus=1_000_000_000,
            pids_limit=s.SANDBOX_PIDS_LIMIT,
        )

        # copy workspace files into tmpfs for compilation/execution
        rc, out = container.exec_run(cmd=STAGE_COMMAND, workdir='/')
        if rc != 0:
            raise SandboxUnavailableError(
                f'failed to stage submission: {_read_output(out, s.OUTPUT_LIMIT_BYTES).strip()}'
            )
        return container

    def _remove_container(self, container: Optional[Container], name: str) -> None:
        try:
            if container is None:
                # run() may have created the container before failing to start it
                container = self.client.containers.get(name)
            container.remove(force=True)
        except NotFound:
            pass
        except (DockerException, SandboxUnavailableError) as e:
            logger.warning(f"Failed to remove sandbox {name}: {e}")

    def _compile_and_run(self, container: Container, request: ExecutionRequest) -> ExecutionOutcome:
        profile = request.language
        limit = self.settings.OUTPUT_LIMIT_BYTES

        if profile.compile_command:
            compile_timeout = self.settings.COMPILE_TIMEOUT_SECONDS
            cmd = ['timeout', '-k', '1', str(compile_timeout), *profile.compile_command]
            started = self.clock()
            rc, (out, err) = self._exec(container, cmd)
            elapsed = self.clock() - started
            if rc != 0:
                diagnostics = '\n'.join(p for p in (_read_output(err, limit), _read_output(out, limit)) if p)
                return ExecutionOutcome(
                    stderr=diagnostics,
                    exit_code=rc,
                    wall_time_ms=int(elapsed * 1000),
                    killed_reason=self._killed_reason(container, rc, elapsed, compile_timeout),
                    stage=ExecutionStage.COMPILE,
                )

        time_limit = request.time_limit_seconds
        cmd = ['timeout', '-k', '1', f'{time_limit:g}', 'sh', '-c', STDIN_WRAPPER, 'sh', *profile.run_command]
        started = self.clock()
        rc, (out, err) = self._exec(container, cmd)
        elapsed = self.clock() - started

        stderr = _read_output(err, limit)
        killed_reason = KilledReason.NONE
        if rc != 0:
            killed_reason = self._killed_reason(container, rc, elapsed, time_limit)
            if killed_reason == KilledReason.NONE and reports_out_of_memory(stderr):
                killed_reason = KilledReason.OOM
        return ExecutionOutcome(
            stdout=_read_output(out, limit),
            stderr=stderr,
            exit_code=rc,
            wall_time_ms=int(elapsed * 1000),
            killed_reason=killed_reason,
        )

    def _exec(self, container: Container, cmd):
        rc, output = container.exec_run(cmd=cmd, workdir=WORK_DIR, demux=True)
        if output is None:
            output = (None, None)
        return rc, output

    def _killed_reason(self, container: Container, exit_code: int, elapsed: float, limit: float) -> KilledReason:
        # a program can exit with 124 on its own before the deadline
        if exit_code == TIMEOUT_EXIT:
            return KilledReason.TIMEOUT if elapsed >= limit else KilledReason.NONE
        if self._oom_killed(container):
            return KilledReason.OOM
        if exit_code == KILLED_EXIT:
            return KilledReason.TIMEOUT if elapsed >= limit else KilledReason.OOM
        return KilledReason.NONE

    def _oom_killed(self, container: Container) -> bool:
        try:
            container.reload()
        except DockerException:
            return False
        return bool(container.attrs.get('State', {}).get('OOMKilled', False))
