"""
Map raw compiler and interpreter diagnostics to a ClassifiedError.

Every function here is total: any string yields a ClassifiedError, unmatched
text falls back to a generic error of the kind implied by the failing step.
"""

from __future__ import annotations

import re
from typing import Optional

from codejudge.languages import Language, LanguageProfile
from codejudge.schemas import (
    ClassifiedError,
    ErrorKind,
    ExecutionOutcome,
    ExecutionStage,
    KilledReason,
)

UNKNOWN_ERROR = 'Unknown error occurred'

# gcc/clang: main.c:5:5: error: expected ';' before 'return'
_GCC_DIAGNOSTIC = re.compile(
    r'^(?P<file>[^:\n]+):(?P<line>\d+):(?P<col>\d+):\s*'
    r'(?P<severity>fatal error|error|warning|note):\s*(?P<message>.+)$',
    re.MULTILINE,
)

# javac: Main.java:3: error: ';' expected
_JAVAC_DIAGNOSTIC = re.compile(
    r'^(?P<file>[^:\n]+):(?P<line>\d+):\s*error:\s*(?P<message>.+)$',
    re.MULTILINE,
)

# Exception in thread "main" java.lang.ArithmeticException: / by zero
_JAVA_EXCEPTION = re.compile(
    r'(?:^|\s)(?P<name>(?:[A-Za-z_$][\w$]*\.)*(?:[A-Z][\w$]*)?(?:Exception|Error))'
    r'(?::[ \t]*(?P<message>[^\n]*))?[ \t]*$',
    re.MULTILINE,
)
_JAVA_FRAME = re.compile(r'^\s*at\s+[^\n(]+\([^:()\n]+\.java:(?P<line>\d+)\)', re.MULTILINE)

_PY_FRAME = re.compile(r'^\s*File "(?P<file>[^"]+)", line (?P<line>\d+)')
_PY_ERROR = re.compile(
    r'^(?P<name>(?:[A-Za-z_][\w.]*)?(?:Error|Exception|Exit|Interrupt|Iteration))(?::\s?(?P<message>.*))?$'
)
_PY_CARET = re.compile(r'^\s*[~^]+\s*$')

PYTHON_SYNTAX_ERRORS = frozenset({'SyntaxError', 'IndentationError', 'TabError'})

SEGFAULT_MESSAGE = 'Runtime Error: Segmentation fault (accessing invalid memory)'
FPE_MESSAGE = 'Runtime Error: Floating point exception (e.g. division by zero)'
ABORT_MESSAGE = 'Runtime Error: Aborted'

# 128 + signal number, as reported by a shell for a signal-terminated child
SIGSEGV_EXIT = 139
SIGFPE_EXIT = 136
SIGABRT_EXIT = 134


def classify(raw_text: str, language: LanguageProfile, was_compile_step: bool,
             output_produced: bool = False) -> ClassifiedError:
    text = raw_text or ''
    if language.id in (Language.C, Language.CPP):
        matched = _classify_gcc(text, was_compile_step)
    elif language.id == Language.JAVA:
        matched = _classify_java(text, was_compile_step)
    elif language.id == Language.PYTHON:
        matched = _classify_python(text, language, output_produced)
    else:
        matched = None

    if matched is not None:
        return matched
    return _fallback(text, was_compile_step)


def classify_outcome(outcome: ExecutionOutcome, language: LanguageProfile,
                     memory_limit_mb: Optional[int] = None,
                     time_limit_seconds: Optional[float] = None) -> ClassifiedError:
    """Classify a failed execution. Resource kills win over any diagnostic text."""
    if outcome.killed_reason == KilledReason.OOM:
        if memory_limit_mb:
            message = f'Memory Limit Exceeded: your code used more than {memory_limit_mb}MB of memory.'
        else:
            message = 'Memory Limit Exceeded'
        return ClassifiedError(kind=ErrorKind.MEMORY_LIMIT_EXCEEDED, message=message)

    if outcome.killed_reason == KilledReason.TIMEOUT:
        if outcome.stage == ExecutionStage.COMPILE:
            message = 'Time Limit Exceeded: compilation took too long.'
        elif time_limit_seconds:
            message = f'Time Limit Exceeded: your code ran longer than {time_limit_seconds:g} seconds.'
        else:
            message = 'Time Limit Exceeded'
        return ClassifiedError(kind=ErrorKind.TIME_LIMIT_EXCEEDED, message=message)

    if outcome.stage == ExecutionStage.LAUNCH:
        detail = outcome.stderr.strip() or UNKNOWN_ERROR
        return ClassifiedError(kind=ErrorKind.INTERNAL_ERROR, message=f'Sandbox failed to start: {detail}')

    if outcome.stage == ExecutionStage.COMPILE:
        return classify(outcome.stderr or outcome.stdout, language, True)

    if language.is_compiled:
        signal_error = _classify_signal(outcome)
        if signal_error is not None:
            return signal_error

    if not outcome.stderr.strip():
        return ClassifiedError(
            kind=ErrorKind.RUNTIME_ERROR,
            message=f'Process exited with code {outcome.exit_code}',
        )
    return classify(outcome.stderr, language, False, output_produced=bool(outcome.stdout))


def _fallback(text: str, was_compile_step: bool) -> ClassifiedError:
    kind = ErrorKind.COMPILE_ERROR if was_compile_step else ErrorKind.RUNTIME_ERROR
    return ClassifiedError(kind=kind, message=text.strip() or UNKNOWN_ERROR)


def _classify_signal(outcome: ExecutionOutcome) -> Optional[ClassifiedError]:
    stderr = outcome.stderr
    if outcome.exit_code == SIGSEGV_EXIT or 'Segmentation fault' in stderr or 'SIGSEGV' in stderr:
        return ClassifiedError(kind=ErrorKind.RUNTIME_ERROR, message=SEGFAULT_MESSAGE)
    if outcome.exit_code == SIGFPE_EXIT or 'Floating point exception' in stderr:
        return ClassifiedError(kind=ErrorKind.RUNTIME_ERROR, message=FPE_MESSAGE)
    if outcome.exit_code == SIGABRT_EXIT:
        detail = stderr.strip()
        message = f'{ABORT_MESSAGE}\n{detail}' if detail else ABORT_MESSAGE
        return ClassifiedError(kind=ErrorKind.RUNTIME_ERROR, message=message)
    return None


def _classify_gcc(text: str, was_compile_step: bool) -> Optional[ClassifiedError]:
    if not was_compile_step:
        return None
    for match in _GCC_DIAGNOSTIC.finditer(text):
        if match.group('severity') not in ('error', 'fatal error'):
            continue
        line = int(match.group('line'))
        return ClassifiedError(
            kind=ErrorKind.COMPILE_ERROR,
            message=f"Line {line}: {match.group('message').strip()}",
            source_line=line,
            source_column=int(match.group('col')),
        )
    return None


def _classify_java(text: str, was_compile_step: bool) -> Optional[ClassifiedError]:
    if was_compile_step:
        match = _JAVAC_DIAGNOSTIC.search(text)
        if match is None:
            return None
        line = int(match.group('line'))
        return ClassifiedError(
            kind=ErrorKind.COMPILE_ERROR,
            message=f"Line {line}: {match.group('message').strip()}",
            source_line=line,
        )

    match = _JAVA_EXCEPTION.search(text)
    if match is None:
        return None
    name = match.group('name').rsplit('.', 1)[-1]
    detail = (match.group('message') or '').strip()
    frame = _JAVA_FRAME.search(text, match.end())
    return ClassifiedError(
        kind=ErrorKind.RUNTIME_ERROR,
        message=f'{name}: {detail}' if detail else name,
        source_line=int(frame.group('line')) if frame else None,
    )


def _classify_python(text: str, language: LanguageProfile, output_produced: bool) -> Optional[ClassifiedError]:
    lines = text.rstrip().splitlines()

    error_index = None
    for i in range(len(lines) - 1, -1, -1):
        if _PY_ERROR.match(lines[i].strip()):
            error_index = i
            break
    if error_index is None:
        return None

    error = _PY_ERROR.match(lines[error_index].strip())
    name = error.group('name')
    detail = (error.group('message') or '').strip()

    frame_line, source_text = _last_python_frame(lines[:error_index], language.source_file_name)

    message = f'{name}: {detail}' if detail else name
    if frame_line is not None and source_text:
        message = f'{message}\nLine {frame_line}: {source_text}'

    is_syntax = name.rsplit('.', 1)[-1] in PYTHON_SYNTAX_ERRORS and not output_produced
    return ClassifiedError(
        kind=ErrorKind.COMPILE_ERROR if is_syntax else ErrorKind.RUNTIME_ERROR,
        message=message,
        source_line=frame_line,
    )


def _last_python_frame(lines, source_file_name):
    """Return (line number, source text) of the innermost frame, preferring the submission's file."""
    frames = []
    for i, line in enumerate(lines):
        match = _PY_FRAME.match(line)
        if match:
            frames.append((i, match))
    if not frames:
        return None, None

    own = [f for f in frames if f[1].group('file').endswith(source_file_name)]
    index, match = (own or frames)[-1]

    source_text = None
    if index + 1 < len(lines):
        candidate = lines[index + 1]
        if not _PY_FRAME.match(candidate) and not _PY_CARET.match(candidate):
            source_text = candidate.strip() or None
    return int(match.group('line')), source_text
