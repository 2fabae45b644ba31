from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict

from codejudge.exceptions import UnknownLanguageError
from codejudge.settings import Settings

WORK_DIR = '/tmp/run'


class Language(str, Enum):
    C = 'c'
    CPP = 'cpp'
    JAVA = 'java'
    PYTHON = 'python'


class LanguageProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Language
    source_file_name: str
    runtime_image: str
    compile_command: Optional[Tuple[str, ...]] = None
    run_command: Tuple[str, ...]

    @property
    def is_compiled(self) -> bool:
        return self.compile_command is not None


DEFAULT_PROFILES = (
    LanguageProfile(
        id=Language.C,
        source_file_name='main.c',
        runtime_image='gcc:latest',
        compile_command=('gcc', '-o', f'{WORK_DIR}/executable', 'main.c', '-lm', '-O2', '-std=c11'),
        run_command=(f'{WORK_DIR}/executable',),
    ),
    LanguageProfile(
        id=Language.CPP,
        source_file_name='main.cpp',
        runtime_image='gcc:latest',
        compile_command=('g++', '-o', f'{WORK_DIR}/executable', 'main.cpp', '-O2', '-std=c++17'),
        run_command=(f'{WORK_DIR}/executable',),
    ),
    LanguageProfile(
        id=Language.JAVA,
        source_file_name='Main.java',
        runtime_image='eclipse-temurin:17-jdk',
        compile_command=('javac', '-d', WORK_DIR, 'Main.java'),
        run_command=('java', '-XX:-UsePerfData', '-cp', WORK_DIR, 'Main'),
    ),
    LanguageProfile(
        id=Language.PYTHON,
        source_file_name='main.py',
        runtime_image='python:3.12-slim',
        run_command=('python3', 'main.py'),
    ),
)


class LanguageRegistry:
    """Immutable lookup table of the supported language profiles."""

    def __init__(self, profiles):
        self._profiles: Mapping[Language, LanguageProfile] = MappingProxyType(
            {p.id: p for p in profiles}
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> 'LanguageRegistry':
        images = {resolve_language(key).value: image for key, image in settings.RUNTIME_IMAGES.items()}
        profiles = [
            p.model_copy(update={'runtime_image': images[p.id.value]}) if p.id.value in images else p
            for p in DEFAULT_PROFILES
        ]
        return cls(profiles)

    def get(self, language_id: Union[Language, str]) -> LanguageProfile:
        language = resolve_language(language_id)
        try:
            return self._profiles[language]
        except KeyError:
            raise UnknownLanguageError(language.value) from None

    def __contains__(self, language_id) -> bool:
        try:
            self.get(language_id)
        except UnknownLanguageError:
            return False
        return True

    def __iter__(self):
        return iter(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)


def resolve_language(language_id: Union[Language, str]) -> Language:
    if isinstance(language_id, Language):
        return language_id
    try:
        return Language(str(language_id).strip().lower())
    except ValueError:
        raise UnknownLanguageError(str(language_id)) from None
