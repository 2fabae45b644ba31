from typing import List, Optional


class CodeJudgeError(Exception):
    pass


class UnknownLanguageError(CodeJudgeError, ValueError):
    def __init__(self, language_id: str):
        super().__init__(f'unsupported language: {language_id}')
        self.language_id = language_id


class NoTestCasesError(CodeJudgeError, ValueError):
    def __init__(self):
        super().__init__('no test cases')


class SandboxUnavailableError(CodeJudgeError):
    pass


class JudgeCancelledError(CodeJudgeError):
    """Raised when the caller abandons a batch between two test cases."""

    def __init__(self, results: Optional[List] = None):
        super().__init__('judging cancelled by caller')
        self.results = list(results or [])
