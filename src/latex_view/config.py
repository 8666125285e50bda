"""Configuration loading from environment variables and CLI flags."""

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional


class Engine(str, Enum):
    LATEX = "latex"
    MATHJAX = "mathjax"


DEFAULTS = {
    Engine.LATEX: "latex",
    Engine.MATHJAX: "tex2svg",
}

ENV_KEYS = {
    Engine.LATEX: "LATEX_VIEW_LATEX",
    Engine.MATHJAX: "LATEX_VIEW_TEX2SVG",
}

TIMEOUT_ENV_KEY = "LATEX_VIEW_TIMEOUT"
DEFAULT_TIMEOUT = 30.0

DEFAULT_PACKAGES = ("amsmath", "amssymb")

_MACRO_NAME = re.compile(r"^[A-Za-z]+$")


@dataclass
class EngineConfig:
    """Options handed through to the engine untouched.

    ``macros`` maps a command name (without the backslash) to its body;
    ``#1``..``#9`` in the body declare arguments.
    """

    macros: dict[str, str] = field(default_factory=dict)
    packages: tuple[str, ...] = DEFAULT_PACKAGES


def parse_macro(spec: str) -> tuple[str, str]:
    """Parse ``NAME=BODY`` (the leading backslash on NAME is optional)."""
    name, sep, body = spec.partition("=")
    name = name.strip().lstrip("\\")
    if not sep or not _MACRO_NAME.match(name):
        raise ValueError(f"Invalid macro definition {spec!r}; expected NAME=BODY.")
    return name, body.strip()


@dataclass
class Config:
    engine: Engine
    command: str
    timeout: Optional[float]
    advanced: bool = True
    engine_config: EngineConfig = field(default_factory=EngineConfig)

    @classmethod
    def from_env(
        cls,
        engine: Engine,
        command_override: Optional[str] = None,
        timeout_override: Optional[float] = None,
        macros: Optional[dict[str, str]] = None,
        packages: Optional[Iterable[str]] = None,
        advanced: bool = True,
    ) -> "Config":
        command = command_override or os.environ.get(ENV_KEYS[engine], "") or DEFAULTS[engine]

        if timeout_override is not None:
            timeout = timeout_override
        else:
            raw = os.environ.get(TIMEOUT_ENV_KEY, "")
            try:
                timeout = float(raw) if raw else DEFAULT_TIMEOUT
            except ValueError:
                raise RuntimeError(
                    f"{TIMEOUT_ENV_KEY} must be a number of seconds, got {raw!r}."
                ) from None

        engine_config = EngineConfig(
            macros=dict(macros or {}),
            packages=tuple(packages) if packages else DEFAULT_PACKAGES,
        )
        return cls(
            engine=engine,
            command=command,
            timeout=timeout if timeout > 0 else None,
            advanced=advanced,
            engine_config=engine_config,
        )
