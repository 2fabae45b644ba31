import itertools
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import pytest
from docker.errors import NotFound
from docker.models.containers import ExecResult

# keep a developer's config.toml out of the test run
os.environ.setdefault("CODEJUDGE_CONFIG", os.path.join(os.path.dirname(__file__), "no-such-config.toml"))

from codejudge.languages import Language, LanguageRegistry, DEFAULT_PROFILES  # noqa: E402
from codejudge.schemas import ExecutionOutcome, ExecutionRequest  # noqa: E402
from codejudge.settings import Settings  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    return Settings(config_path=os.path.join(os.path.dirname(__file__), "no-such-config.toml"))


@pytest.fixture
def registry() -> LanguageRegistry:
    return LanguageRegistry(DEFAULT_PROFILES)


@pytest.fixture
def python_profile(registry):
    return registry.get(Language.PYTHON)


@pytest.fixture
def c_profile(registry):
    return registry.get(Language.C)


@pytest.fixture
def java_profile(registry):
    return registry.get(Language.JAVA)


class ScriptedRunner:
    """Runner double that answers each call from a list of outcomes or exceptions."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.requests: List[ExecutionRequest] = []

    def execute(self, request: ExecutionRequest) -> ExecutionOutcome:
        self.requests.append(request)
        if not self.outcomes:
            raise AssertionError("runner called more often than scripted")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(request)
        return outcome


@pytest.fixture
def scripted_runner() -> Callable[..., ScriptedRunner]:
    return ScriptedRunner


# ---- Docker SDK fakes ----

STAGING_ARGV = ['cp', '-R', '--preserve=mode,timestamps', '/workspace/.', '/tmp/run/']


@dataclass
class FakeContainer:
    name: str
    run_kwargs: Dict[str, Any]
    exec_script: Callable[[List[str]], ExecResult]
    oom_killed: bool = False
    removed: bool = False
    exec_calls: List[List[str]] = field(default_factory=list)
    attrs: Dict[str, Any] = field(default_factory=dict)
    staged_files: Dict[str, str] = field(default_factory=dict)

    def exec_run(self, cmd, workdir=None, demux=False, **kwargs) -> ExecResult:
        self.exec_calls.append(list(cmd))
        if cmd[0] == 'cp':
            if list(cmd) != STAGING_ARGV:
                # ownership cannot be preserved without CAP_CHOWN
                return ExecResult(1, b"cp: failed to preserve ownership for '/tmp/run/./main.py': Operation not permitted")
            # snapshot the bind-mounted workspace the way the copy would see it
            host_dir = next(iter(self.run_kwargs['volumes']))
            for file_name in os.listdir(host_dir):
                with open(os.path.join(host_dir, file_name), encoding='utf-8', newline='') as f:
                    self.staged_files[file_name] = f.read()
            return ExecResult(0, b'')
        return self.exec_script(list(cmd))

    def reload(self) -> None:
        self.attrs = {'State': {'OOMKilled': self.oom_killed}}

    def remove(self, force: bool = False) -> None:
        self.removed = True


class FakeContainers:
    def __init__(self, exec_script, run_error: Optional[Exception] = None, oom_killed: bool = False):
        self.exec_script = exec_script
        self.run_error = run_error
        self.oom_killed = oom_killed
        self.created: List[FakeContainer] = []
        self.get_calls: List[str] = []

    def run(self, image, command=None, **kwargs) -> FakeContainer:
        if self.run_error is not None:
            raise self.run_error
        container = FakeContainer(
            name=kwargs['name'],
            run_kwargs=dict(kwargs, image=image, command=command),
            exec_script=self.exec_script,
            oom_killed=self.oom_killed,
        )
        self.created.append(container)
        return container

    def get(self, name: str) -> FakeContainer:
        self.get_calls.append(name)
        raise NotFound(f'No such container: {name}')


class FakeDockerClient:
    def __init__(self, exec_script=None, run_error=None, oom_killed=False):
        self.containers = FakeContainers(
            exec_script or (lambda cmd: ExecResult(0, (b'', b''))),
            run_error=run_error,
            oom_killed=oom_killed,
        )


@pytest.fixture
def fake_docker() -> Callable[..., FakeDockerClient]:
    return FakeDockerClient


@pytest.fixture
def ticking_clock() -> Callable[[float], Callable[[], float]]:
    """Clock whose every reading is `step` seconds after the previous one."""
    def factory(step: float) -> Callable[[], float]:
        ticks = itertools.count(0.0, step)
        return lambda: next(ticks)
    return factory
