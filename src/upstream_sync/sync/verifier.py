"""Post-sync verification.

Every synced path gets independent checks; one failing check never stops
the others:

* ``exists`` -- the local file is present.
* ``hash-match`` -- the local digest equals the upstream digest.
* ``syntax`` -- for extensions with a configured checker, the file parses
  in a subprocess (never executed) within a timeout.
* ``json-valid`` / ``yaml-valid`` / ``toml-valid`` -- structured config
  parses.

Once per run, ``reference-integrity`` checks that every file referenced
from the central manifest (``settings.json`` by default) exists locally,
whether or not the manifest itself was synced.

Parsing never raises: results are ``ParsedOk`` or ``ParsedError`` so a
malformed file degrades into a failed check.
"""

from __future__ import annotations

import json
import logging
import re
import subprocess
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .discovery import hash_file
from .models import VerifyCheck, VerifyResult

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tagged parse result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParsedOk:
    """Successful parse carrying the parsed value."""

    value: Any = None


@dataclass(frozen=True)
class ParsedError:
    """Failed parse carrying a human-readable reason."""

    reason: str


ParseResult = ParsedOk | ParsedError


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

_PYTHON_CHECK = (
    "import ast, sys; "
    "ast.parse(open(sys.argv[1], 'rb').read(), sys.argv[1])"
)

DEFAULT_SYNTAX_CHECKERS: dict[str, list[str]] = {
    ".py": [sys.executable, "-c", _PYTHON_CHECK, "{path}"],
    ".sh": ["bash", "-n", "{path}"],
}

STRUCTURED_FORMATS: dict[str, str] = {
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
}

DEFAULT_REFERENCE_PATTERN = r"hooks/[\w./-]+\.(?:ts|js|py|sh)"


@dataclass(frozen=True)
class ReferenceRule:
    """Where references live and what they look like.

    Attributes:
        manifest: Manifest path relative to the local root.
        pattern: Regex matching one relative file reference inside any
            string value of the manifest.
    """

    manifest: str = "settings.json"
    pattern: str = DEFAULT_REFERENCE_PATTERN


@dataclass(frozen=True)
class VerifySettings:
    """Verifier configuration.

    Attributes:
        syntax_checkers: Extension -> argv template with a ``{path}``
            placeholder.
        timeout: Seconds allowed per syntax check.
        references: Reference rule, or ``None`` to disable the check.
    """

    syntax_checkers: dict[str, list[str]] = field(
        default_factory=lambda: dict(DEFAULT_SYNTAX_CHECKERS)
    )
    timeout: float = 10.0
    references: ReferenceRule | None = field(default_factory=ReferenceRule)


# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------


def parse_structured(path: Path) -> ParseResult:
    """Parse a JSON, YAML or TOML file chosen by extension."""
    fmt = STRUCTURED_FORMATS.get(path.suffix.lower())
    if fmt is None:
        return ParsedError(f"unsupported format: {path.suffix or path.name}")
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        return ParsedError(f"cannot read: {exc}")

    try:
        if fmt == "json":
            return ParsedOk(json.loads(text))
        if fmt == "yaml":
            return ParsedOk(yaml.safe_load(text))
        return ParsedOk(tomllib.loads(text))
    except (ValueError, yaml.YAMLError) as exc:
        return ParsedError(_first_line(str(exc)))


def check_syntax(
    path: Path, argv_template: list[str], timeout: float
) -> ParseResult | None:
    """Run a syntax checker on *path*.

    Returns:
        ``ParsedOk`` / ``ParsedError``, or ``None`` when the checker
        program is not installed (the check is not applicable).
    """
    argv = [arg.replace("{path}", str(path)) for arg in argv_template]
    try:
        proc = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        logger.warning(
            "Syntax checker %s not found; skipping %s", argv[0], path
        )
        return None
    except subprocess.TimeoutExpired:
        return ParsedError(f"checker timed out after {timeout:g}s")

    if proc.returncode == 0:
        return ParsedOk()
    output = (proc.stderr or proc.stdout or "").strip()
    return ParsedError(
        _last_line(output) or f"exit status {proc.returncode}"
    )


def extract_references(value: Any, regex: re.Pattern[str]) -> list[str]:
    """Collect every match of *regex* in string values of *value*."""
    found: list[str] = []

    def _walk(obj: Any) -> None:
        if isinstance(obj, str):
            found.extend(regex.findall(obj))
        elif isinstance(obj, dict):
            for item in obj.values():
                _walk(item)
        elif isinstance(obj, list):
            for item in obj:
                _walk(item)

    _walk(value)
    return list(dict.fromkeys(found))


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def _check(file: str, name: str, result: ParseResult, ok: str) -> VerifyCheck:
    if isinstance(result, ParsedOk):
        return VerifyCheck(file=file, check=name, passed=True, message=ok)
    return VerifyCheck(
        file=file, check=name, passed=False, message=result.reason[:200]
    )


def _hash_check(
    rel: str,
    upstream_dir: Path,
    local_dir: Path,
    expected: str | None = None,
) -> VerifyCheck:
    try:
        local_hash = hash_file(local_dir / rel)
    except OSError as exc:
        return VerifyCheck(
            file=rel,
            check="hash-match",
            passed=False,
            message=f"cannot hash local file: {exc.strerror or exc}",
        )
    if expected is not None:
        upstream_hash = expected
    else:
        try:
            upstream_hash = hash_file(upstream_dir / rel)
        except OSError as exc:
            return VerifyCheck(
                file=rel,
                check="hash-match",
                passed=False,
                message=f"cannot hash upstream file: {exc.strerror or exc}",
            )
    if local_hash == upstream_hash:
        return VerifyCheck(
            file=rel,
            check="hash-match",
            passed=True,
            message="Hash matches upstream",
        )
    return VerifyCheck(
        file=rel,
        check="hash-match",
        passed=False,
        message=(
            f"Hash mismatch: local={local_hash[:8]} "
            f"upstream={upstream_hash[:8]}"
        ),
    )


def check_file(
    rel: str,
    upstream_dir: Path,
    local_dir: Path,
    settings: VerifySettings,
    expected_hash: str | None = None,
) -> list[VerifyCheck]:
    """All per-file checks for one synced path.

    *expected_hash* is the upstream digest the diff classified; when given,
    the local copy is compared against it instead of re-hashing upstream.
    """
    local_path = local_dir / rel
    checks: list[VerifyCheck] = []

    exists = local_path.is_file()
    checks.append(
        VerifyCheck(
            file=rel,
            check="exists",
            passed=exists,
            message="File present" if exists else "File not found after sync",
        )
    )
    checks.append(_hash_check(rel, upstream_dir, local_dir, expected_hash))

    suffix = local_path.suffix.lower()
    checker = settings.syntax_checkers.get(suffix)
    if checker:
        result = check_syntax(local_path, checker, settings.timeout)
        if result is not None:
            checks.append(_check(rel, "syntax", result, "Syntax OK"))

    fmt = STRUCTURED_FORMATS.get(suffix)
    if fmt:
        checks.append(
            _check(
                rel,
                f"{fmt}-valid",
                parse_structured(local_path),
                f"Valid {fmt.upper()}",
            )
        )
    return checks


def check_references(
    local_dir: Path, rule: ReferenceRule
) -> list[VerifyCheck]:
    """Verify every reference declared by the manifest resolves."""
    manifest = local_dir / rule.manifest
    if not manifest.is_file():
        logger.debug("No reference manifest at %s", manifest)
        return []

    parsed = parse_structured(manifest)
    if isinstance(parsed, ParsedError):
        return [
            VerifyCheck(
                file=rule.manifest,
                check="reference-integrity",
                passed=False,
                message=f"Cannot read references: {parsed.reason}"[:200],
            )
        ]

    regex = re.compile(rule.pattern)
    checks: list[VerifyCheck] = []
    for ref in extract_references(parsed.value, regex):
        present = (local_dir / ref).is_file()
        checks.append(
            VerifyCheck(
                file=ref,
                check="reference-integrity",
                passed=present,
                message=(
                    f"Referenced by {rule.manifest}"
                    if present
                    else f"{rule.manifest} references a missing file"
                ),
            )
        )
    return checks


def verify_sync_result(
    synced: list[str],
    upstream_dir: Path,
    local_dir: Path,
    settings: VerifySettings | None = None,
    upstream_hashes: dict[str, str] | None = None,
) -> VerifyResult:
    """Verify a completed sync.

    Args:
        synced: Relative paths the executor reported as synced.
        upstream_dir: Root of the upstream tree.
        local_dir: Root of the local tree.
        settings: Checker configuration (defaults if ``None``).
        upstream_hashes: Upstream digests recorded by the diff; the same
            digests later become the baseline.

    Returns:
        ``VerifyResult``; ``passed`` is the AND of every check.
    """
    settings = settings or VerifySettings()
    hashes = upstream_hashes or {}
    checks: list[VerifyCheck] = []
    for rel in synced:
        checks.extend(
            check_file(
                rel, upstream_dir, local_dir, settings, hashes.get(rel)
            )
        )

    if settings.references is not None:
        checks.extend(check_references(local_dir, settings.references))

    result = VerifyResult(checks=checks)
    if result.passed:
        logger.info("Verification passed (%d checks)", len(checks))
    else:
        logger.warning(
            "Verification failed: %d of %d checks",
            len(result.failed),
            len(checks),
        )
    return result


def _first_line(text: str) -> str:
    return text.strip().splitlines()[0] if text.strip() else text


def _last_line(text: str) -> str:
    return text.strip().splitlines()[-1] if text.strip() else ""
